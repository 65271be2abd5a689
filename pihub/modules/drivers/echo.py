"""Echo driver — returns whatever it is sent.  Touches no hardware."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from pihub.exceptions import UnknownActionError
from pihub.modules.base import BaseModule

if TYPE_CHECKING:
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder


class EchoModule(BaseModule):
    """Accepts any action name; the result echoes the action and its payload."""

    KIND = "echo"

    @classmethod
    def actions(cls) -> list[str]:
        return ["*"]

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        # Config is accepted but unused; it must still be well-formed JSON.
        binder.decode()

    def _get_handler(self, action: str) -> Callable[["ConfigBinder"], Any]:
        if not action:
            raise UnknownActionError(self.KIND, action)
        return lambda binder: {"action": action, "config": binder.decode()}
