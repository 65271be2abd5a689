"""Hardware layer — GPIO backends and pin handles.

Architecture:
  - :class:`GPIOInterface` is the abstract line-level contract.
  - :class:`RaspberryPiGPIO` wraps the ``RPi.GPIO`` library.
  - :class:`MockGPIO` is a fully deterministic in-memory implementation for
    tests and for deployments without physical hardware.
  - :class:`Pin` is the handle drivers receive from the
    :class:`~pihub.hardware.provider.ResourceProvider`.  One ``Pin`` exists per
    line and is shared by reference between every module that asks for it.

GPIO design decisions:
  - Lines use BCM numbering.  BCM 18 = physical pin 12 on a 40-pin header.
  - All calls are synchronous.  The API layer runs module actions in worker
    threads, so blocking here never stalls the event loop.
  - No RPi.GPIO constants leak across the abstraction boundary.
  - Edge waits poll the line and require three identical consecutive reads
    before accepting a level, which filters single-sample glitches.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Iterator

from pihub.exceptions import HardwareError, SignalTimeoutError


# ---------------------------------------------------------------------------
# Type definitions
# ---------------------------------------------------------------------------


class Level(IntEnum):
    LOW = 0
    HIGH = 1


class PinMode(IntEnum):
    INPUT = 0
    OUTPUT = 1


class PullResistor(IntEnum):
    NONE = 0
    UP = 1
    DOWN = 2


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class GPIOInterface(ABC):
    """Abstract GPIO interface addressed by BCM line number."""

    name: str = "gpio"

    @abstractmethod
    def setup(self, line: int, mode: PinMode, pull: PullResistor = PullResistor.NONE) -> None:
        """Configure *line* as input or output with optional pull resistor."""

    @abstractmethod
    def digital_read(self, line: int) -> int:
        """Return the digital value of *line* (0 or 1)."""

    @abstractmethod
    def digital_write(self, line: int, value: int) -> None:
        """Set the digital output of *line* to *value* (0 or 1)."""

    @abstractmethod
    def pwm_start(self, line: int, frequency_hz: float, duty_cycle: float) -> None:
        """Start PWM on *line* with the given frequency and duty cycle (0–100)."""

    @abstractmethod
    def pwm_set_duty_cycle(self, line: int, duty_cycle: float) -> None:
        """Update the duty cycle on an active PWM channel."""

    @abstractmethod
    def pwm_stop(self, line: int) -> None:
        """Stop PWM on *line*."""

    @abstractmethod
    def cleanup(self, lines: list[int] | None = None) -> None:
        """Release GPIO resources.  Pass ``None`` to release all lines."""


# ---------------------------------------------------------------------------
# Raspberry Pi implementation
# ---------------------------------------------------------------------------


class RaspberryPiGPIO(GPIOInterface):
    """GPIO implementation backed by the ``RPi.GPIO`` library.

    Raises :class:`~pihub.exceptions.HardwareError` at instantiation if
    ``RPi.GPIO`` is not installed.
    """

    name = "rpi_gpio"

    def __init__(self) -> None:
        try:
            import RPi.GPIO as GPIO  # type: ignore[import]
        except ImportError as exc:
            raise HardwareError(
                "RPi.GPIO is not installed.  Install it with: pip install 'pihub[pi]'",
                cause=exc,
            ) from exc

        self._gpio = GPIO
        GPIO.setmode(GPIO.BCM)
        GPIO.setwarnings(False)
        self._pwm_channels: dict[int, Any] = {}

    def setup(self, line: int, mode: PinMode, pull: PullResistor = PullResistor.NONE) -> None:
        gpio_mode = self._gpio.OUT if mode == PinMode.OUTPUT else self._gpio.IN
        if gpio_mode == self._gpio.OUT:
            self._gpio.setup(line, gpio_mode)
            return
        pull_map = {
            PullResistor.NONE: self._gpio.PUD_OFF,
            PullResistor.UP: self._gpio.PUD_UP,
            PullResistor.DOWN: self._gpio.PUD_DOWN,
        }
        self._gpio.setup(line, gpio_mode, pull_up_down=pull_map[pull])

    def digital_read(self, line: int) -> int:
        return int(self._gpio.input(line))

    def digital_write(self, line: int, value: int) -> None:
        self._gpio.output(line, bool(value))

    def pwm_start(self, line: int, frequency_hz: float, duty_cycle: float) -> None:
        self.pwm_stop(line)
        self.setup(line, PinMode.OUTPUT)
        pwm = self._gpio.PWM(line, frequency_hz)
        pwm.start(duty_cycle)
        self._pwm_channels[line] = pwm

    def pwm_set_duty_cycle(self, line: int, duty_cycle: float) -> None:
        if line not in self._pwm_channels:
            raise HardwareError(f"No active PWM channel on line {line}.", context={"line": line})
        self._pwm_channels[line].ChangeDutyCycle(duty_cycle)

    def pwm_stop(self, line: int) -> None:
        if line in self._pwm_channels:
            self._pwm_channels.pop(line).stop()

    def cleanup(self, lines: list[int] | None = None) -> None:
        for line in list(self._pwm_channels):
            if lines is None or line in lines:
                self.pwm_stop(line)
        if lines:
            self._gpio.cleanup(lines)
        else:
            self._gpio.cleanup()


# ---------------------------------------------------------------------------
# Mock implementation (tests + non-Pi environments)
# ---------------------------------------------------------------------------


@dataclass
class GPIOCall:
    """A recorded GPIO method call for test assertions."""

    method: str
    args: tuple[Any, ...]


@dataclass
class PWMState:
    frequency_hz: float
    duty_cycle: float  # 0.0–100.0


class MockGPIO(GPIOInterface):
    """Fully deterministic in-memory GPIO for tests and non-Pi environments.

    All state is stored in plain dicts:
      - ``line_modes``    — {line: PinMode}
      - ``line_values``   — {line: int (0 or 1)}
      - ``pwm_channels``  — {line: PWMState}
      - ``input_sources`` — {line: callable returning 0/1}, consulted on every read
      - ``call_log``      — list[GPIOCall]

    Usage::

        gpio = MockGPIO()
        gpio.setup(20, PinMode.OUTPUT)
        gpio.digital_write(20, 1)
        assert gpio.line_values[20] == 1

    To simulate an input line driven by a device::

        gpio.input_sources[17] = lambda: 1
    """

    name = "mock"

    def __init__(self) -> None:
        self.line_modes: dict[int, PinMode] = {}
        self.line_values: dict[int, int] = {}
        self.pwm_channels: dict[int, PWMState] = {}
        self.input_sources: dict[int, Callable[[], int]] = {}
        self.call_log: list[GPIOCall] = []
        self._log_lock = threading.Lock()

    def _record(self, method: str, *args: Any) -> None:
        with self._log_lock:
            self.call_log.append(GPIOCall(method=method, args=args))

    def calls(self, method: str) -> list[GPIOCall]:
        return [c for c in self.call_log if c.method == method]

    def setup(self, line: int, mode: PinMode, pull: PullResistor = PullResistor.NONE) -> None:
        self._record("setup", line, mode, pull)
        self.line_modes[line] = mode
        self.line_values.setdefault(line, 0)

    def digital_read(self, line: int) -> int:
        source = self.input_sources.get(line)
        if source is not None:
            return int(bool(source()))
        return self.line_values.get(line, 0)

    def digital_write(self, line: int, value: int) -> None:
        self._record("digital_write", line, value)
        self.line_values[line] = int(bool(value))

    def pwm_start(self, line: int, frequency_hz: float, duty_cycle: float) -> None:
        self._record("pwm_start", line, frequency_hz, duty_cycle)
        self.pwm_channels[line] = PWMState(frequency_hz=frequency_hz, duty_cycle=duty_cycle)

    def pwm_set_duty_cycle(self, line: int, duty_cycle: float) -> None:
        self._record("pwm_set_duty_cycle", line, duty_cycle)
        if line not in self.pwm_channels:
            raise HardwareError(f"No active PWM channel on line {line}.", context={"line": line})
        self.pwm_channels[line].duty_cycle = duty_cycle

    def pwm_stop(self, line: int) -> None:
        self._record("pwm_stop", line)
        self.pwm_channels.pop(line, None)

    def cleanup(self, lines: list[int] | None = None) -> None:
        self._record("cleanup", lines)
        targets = lines if lines else list(self.line_modes)
        for line in targets:
            self.line_modes.pop(line, None)
            self.line_values.pop(line, None)
            self.pwm_channels.pop(line, None)


# ---------------------------------------------------------------------------
# Pin handle
# ---------------------------------------------------------------------------


class PWMChannel:
    """An active PWM signal on a :class:`Pin`.

    Only the channel that is currently active on the pin can change or stop
    the signal, so a module that was replaced cannot stop the PWM a newer
    module started on the same line.
    """

    def __init__(self, pin: "Pin", frequency_hz: float, duty_cycle: float) -> None:
        self.pin = pin
        self.frequency_hz = frequency_hz
        self.duty_cycle = duty_cycle

    @property
    def active(self) -> bool:
        return self.pin._pwm is self

    def set_duty_cycle(self, duty_cycle: float) -> None:
        with self.pin.locked():
            if not self.active:
                raise HardwareError(
                    f"PWM channel on line {self.pin.line} is no longer active.",
                    context={"line": self.pin.line},
                )
            self.pin.gpio.pwm_set_duty_cycle(self.pin.line, duty_cycle)
            self.duty_cycle = duty_cycle

    def stop(self) -> None:
        with self.pin.locked():
            if self.active:
                self.pin.gpio.pwm_stop(self.pin.line)
                self.pin._pwm = None


class Pin:
    """Shared handle to one GPIO line.

    Every operation runs under the pin's re-entrant lock; drivers that need a
    multi-step sequence (a trigger pulse, a bit-banged frame) hold
    :meth:`locked` around the whole sequence.
    """

    def __init__(self, gpio: GPIOInterface, line: int, name: str | None = None) -> None:
        self.gpio = gpio
        self.line = line
        self.name = name or f"GPIO{line}"
        self._lock = threading.RLock()
        self._mode: PinMode | None = None
        self._level: Level | None = None
        self._pwm: PWMChannel | None = None

    def __repr__(self) -> str:
        return f"Pin({self.name!r}, line={self.line})"

    @contextmanager
    def locked(self) -> Iterator["Pin"]:
        with self._lock:
            yield self

    @property
    def level(self) -> Level | None:
        """Last level written to the line, or None if never driven."""
        return self._level

    def out(self, level: Level | bool | int) -> None:
        """Drive the line to *level*, switching it to output mode if needed."""
        value = Level(int(bool(level)))
        with self._lock:
            if self._mode != PinMode.OUTPUT:
                self.gpio.setup(self.line, PinMode.OUTPUT)
                self._mode = PinMode.OUTPUT
            self.gpio.digital_write(self.line, int(value))
            self._level = value

    def as_input(self, pull: PullResistor = PullResistor.NONE) -> None:
        with self._lock:
            self.gpio.setup(self.line, PinMode.INPUT, pull)
            self._mode = PinMode.INPUT

    def read(self) -> Level:
        return Level(self.gpio.digital_read(self.line))

    def wait_for(self, level: Level, timeout_s: float, stage: str = "edge") -> float:
        """Block until the line reliably reads *level*; return elapsed seconds.

        Raises:
            SignalTimeoutError: *timeout_s* elapsed before the level was seen.
        """
        start = time.perf_counter()
        while True:
            elapsed = time.perf_counter() - start
            if elapsed > timeout_s:
                raise SignalTimeoutError(self.line, stage, timeout_s)
            a = self.gpio.digital_read(self.line)
            b = self.gpio.digital_read(self.line)
            c = self.gpio.digital_read(self.line)
            if a == b == c == int(level):
                return elapsed

    def start_pwm(self, frequency_hz: float, duty_cycle: float) -> PWMChannel:
        """Start (or take over) the PWM signal on this line."""
        with self._lock:
            self.gpio.pwm_start(self.line, frequency_hz, duty_cycle)
            self._mode = PinMode.OUTPUT
            self._pwm = PWMChannel(self, frequency_hz, duty_cycle)
            return self._pwm

    def release(self) -> None:
        """Stop any PWM and return the line to the backend."""
        with self._lock:
            if self._pwm is not None:
                self._pwm.stop()
            self.gpio.cleanup([self.line])
            self._mode = None
            self._level = None


@contextmanager
def locked_pins(*pins: Pin) -> Iterator[tuple[Pin, ...]]:
    """Hold the locks of several pins at once.

    Locks are always taken in ascending line order, so two drivers sharing
    the same lines in a different role order cannot deadlock.
    """
    with ExitStack() as stack:
        for pin in sorted(set(pins), key=lambda p: p.line):
            stack.enter_context(pin.locked())
        yield pins


@dataclass
class PinNamespace:
    """Resolved set of usable BCM lines for a board."""

    lines: frozenset[int] = field(default_factory=lambda: frozenset(range(0, 28)))
