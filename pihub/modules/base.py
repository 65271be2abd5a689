"""Module layer — BaseModule contract.

Every driver kind subclasses ``BaseModule``, implements :meth:`_setup` and
exposes actions as ``_action_<name>`` methods.

Lifecycle::

    UNINITIALIZED --initialize()--> READY --stop()--> STOPPED

Design principles:
  - ``act`` is only valid in READY; anything else raises
    :class:`~pihub.exceptions.ModuleStateError` instead of silently no-oping.
  - Unknown action names raise :class:`~pihub.exceptions.UnknownActionError`
    before any handler runs, so they never touch hardware.
  - Actions on one instance never interleave: ``act`` and ``stop`` run under
    the instance lock, which also guards per-module mutable state.
  - Unexpected exceptions from drivers surface as
    :class:`~pihub.exceptions.HardwareError`; pihub errors propagate as-is.
  - Drivers obtain hardware only through the provider and drop every handle
    in :meth:`_teardown`.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from pihub.exceptions import HardwareError, ModuleStateError, PiHubError, UnknownActionError

if TYPE_CHECKING:
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder


class ModuleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    STOPPED = "stopped"


class BaseModule(ABC):
    """Abstract base class for all pihub drivers.

    Subclasses must:
      1. Set the ``KIND`` class attribute (the driver kind, e.g. ``"relay"``)
      2. Implement :meth:`_setup` to bind config and acquire resources
      3. Implement ``_action_<name>(binder)`` methods for each action
      4. Optionally implement :meth:`_teardown` to release resources
    """

    KIND: str = ""
    VERSION: str = "0.1.0"

    def __init__(self) -> None:
        self._state = ModuleState.UNINITIALIZED
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.KIND!r}, state={self._state.value!r})"

    @property
    def state(self) -> ModuleState:
        return self._state

    @classmethod
    def actions(cls) -> list[str]:
        """Names of the actions this driver supports."""
        prefix = "_action_"
        return sorted(
            name[len(prefix):]
            for name in dir(cls)
            if name.startswith(prefix) and callable(getattr(cls, name))
        )

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def initialize(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        """Bind configuration, acquire resources and move to READY.

        Valid once per instance.  A failed initialize leaves the instance
        UNINITIALIZED; callers must still :meth:`stop` it to release anything
        acquired before the failure.
        """
        with self._lock:
            if self._state is not ModuleState.UNINITIALIZED:
                raise ModuleStateError(self.KIND, "initialize", self._state.value)
            self._guarded("initialize", lambda: self._setup(provider, binder))
            self._state = ModuleState.READY

    def act(self, action: str, binder: "ConfigBinder") -> Any:
        """Run *action* and return its JSON-serialisable result.

        Raises:
            UnknownActionError: The driver has no such action.
            ModuleStateError:   The module is not READY.
        """
        handler = self._get_handler(action)
        with self._lock:
            if self._state is not ModuleState.READY:
                raise ModuleStateError(self.KIND, "act on", self._state.value)
            return self._guarded(action, lambda: handler(binder))

    def stop(self) -> None:
        """Release resources and move to STOPPED.  Safe to call more than once."""
        with self._lock:
            if self._state is ModuleState.STOPPED:
                return
            try:
                self._guarded("stop", self._teardown)
            finally:
                self._state = ModuleState.STOPPED

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        """Bind configuration and acquire resources."""

    def _teardown(self) -> None:
        """Release resources acquired in :meth:`_setup`.  Default: nothing."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_handler(self, action: str) -> Callable[["ConfigBinder"], Any]:
        """Convention: action ``"set"`` maps to method ``_action_set``."""
        if not action or not action.isidentifier():
            raise UnknownActionError(self.KIND, action)
        handler = getattr(self, f"_action_{action}", None)
        if handler is None or not callable(handler):
            raise UnknownActionError(self.KIND, action)
        return handler  # type: ignore[no-any-return]

    def _guarded(self, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except PiHubError:
            raise
        except Exception as exc:
            raise HardwareError(
                f"'{self.KIND}' module failed during {operation}: {exc}",
                context={"source": self.KIND, "operation": operation},
                cause=exc,
            ) from exc
