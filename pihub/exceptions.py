"""pihub — Exception hierarchy.

All exceptions raised by the hub inherit from PiHubError so that callers
can catch the full family with a single except clause when needed.

Hierarchy:
    PiHubError
    ├── InputError                  (client-caused; mapped to 4xx)
    │   ├── DecodeError
    │   ├── ConfigValidationError
    │   ├── UnknownSourceError
    │   ├── UnknownModuleError
    │   └── UnknownActionError
    ├── HardwareError               (internal; mapped to 5xx)
    │   ├── PinNotFoundError
    │   ├── ResourceClosedError
    │   └── SignalTimeoutError
    └── ModuleStateError
"""

from __future__ import annotations

from typing import Any


class PiHubError(Exception):
    """Base exception for all pihub errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Input errors — malformed or invalid client data, unknown references
# ---------------------------------------------------------------------------


class InputError(PiHubError):
    """Base for all client-caused errors.  Never retried automatically."""


class DecodeError(InputError):
    """A configuration payload could not be parsed into the expected shape."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, context={"errors": errors or []})
        self.errors = errors or []


class ConfigValidationError(InputError):
    """A configuration payload parsed but failed semantic checks."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, context={"errors": errors or []})
        self.errors = errors or []


class UnknownSourceError(InputError):
    """A module spec references a driver kind that is not registered."""

    def __init__(self, source: str, module: str | None = None) -> None:
        super().__init__(
            f"No such module source: '{source}'",
            context={"source": source, "module": module},
        )
        self.source = source
        self.module = module


class UnknownModuleError(InputError):
    """An act request references a module name absent from the live table."""

    def __init__(self, module: str) -> None:
        super().__init__(
            f"No such module: '{module}'",
            context={"module": module},
        )
        self.module = module


class UnknownActionError(InputError):
    """The target driver does not support the requested action."""

    def __init__(self, kind: str, action: str) -> None:
        super().__init__(
            f"No such action '{action}' for module source '{kind}'",
            context={"source": kind, "action": action},
        )
        self.kind = kind
        self.action = action


# ---------------------------------------------------------------------------
# Hardware errors — I/O failures during initialize or act
# ---------------------------------------------------------------------------


class HardwareError(PiHubError):
    """An underlying hardware operation failed (bus NACK, timeout, missing pin)."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        ctx = dict(context or {})
        if cause is not None:
            ctx["cause"] = str(cause)
        super().__init__(message, context=ctx)
        self.cause = cause


class PinNotFoundError(HardwareError):
    """The pin name does not resolve in the platform's pin namespace."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Failed to find pin '{name}'", context={"pin": name})
        self.name = name


class ResourceClosedError(HardwareError):
    """A resource was requested after the provider was closed."""

    def __init__(self, resource: str) -> None:
        super().__init__(
            f"Resource '{resource}' requested after the provider was closed",
            context={"resource": resource},
        )


class SignalTimeoutError(HardwareError):
    """A signal edge did not arrive within its protocol-level timeout."""

    def __init__(self, pin: int, stage: str, timeout_s: float) -> None:
        super().__init__(
            f"Timed out waiting for signal on pin {pin} ({stage})",
            context={"pin": pin, "stage": stage, "timeout_s": timeout_s},
        )
        self.pin = pin
        self.stage = stage


# ---------------------------------------------------------------------------
# Lifecycle errors
# ---------------------------------------------------------------------------


class ModuleStateError(PiHubError):
    """A module was used outside the state that allows the operation."""

    def __init__(self, kind: str, operation: str, state: str) -> None:
        super().__init__(
            f"Cannot {operation} a '{kind}' module in state '{state}'",
            context={"source": kind, "operation": operation, "state": state},
        )
        self.kind = kind
        self.operation = operation
        self.state = state
