"""Module layer — Module registry.

The registry is the static lookup table from driver kind (the ``source``
field of a module spec) to a zero-argument factory that builds a fresh,
uninitialized driver instance.  It holds no instances itself: every
initialize batch gets new ones, owned by the
:class:`~pihub.modules.manager.ModuleManager`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from pihub.exceptions import UnknownSourceError
from pihub.logging import get_logger

if TYPE_CHECKING:
    from pihub.modules.base import BaseModule

log = get_logger(__name__)

ModuleFactory = Callable[[], "BaseModule"]


class ModuleRegistry:
    """Runtime registry of driver kinds.

    Usage::

        registry = ModuleRegistry()
        registry.register("relay", RelayModule)

        module = registry.create("relay")
        module.initialize(provider, ConfigBinder({"pin": "GPIO20"}))
    """

    def __init__(self) -> None:
        self._factories: dict[str, ModuleFactory] = {}

    def __contains__(self, kind: object) -> bool:
        return kind in self._factories

    def __len__(self) -> int:
        return len(self._factories)

    def register(self, kind: str, factory: ModuleFactory) -> None:
        """Register *factory* under *kind*.  Re-registering replaces the factory."""
        if not kind:
            raise ValueError("Module kind must be a non-empty string.")
        if kind in self._factories:
            log.warning("module_kind_replaced", kind=kind)
        self._factories[kind] = factory
        log.debug("module_kind_registered", kind=kind)

    def unregister(self, kind: str) -> None:
        self._factories.pop(kind, None)

    def create(self, kind: str, module: str | None = None) -> "BaseModule":
        """Build a new instance of *kind*.

        Raises:
            UnknownSourceError: No factory is registered under *kind*.
        """
        factory = self._factories.get(kind)
        if factory is None:
            raise UnknownSourceError(kind, module=module)
        return factory()

    def kinds(self) -> list[str]:
        return sorted(self._factories)

    def actions(self, kind: str) -> list[str]:
        """Action names supported by *kind*, without building an instance when possible."""
        factory = self._factories.get(kind)
        if factory is None:
            raise UnknownSourceError(kind)
        lister = getattr(factory, "actions", None)
        if callable(lister):
            return list(lister())
        return factory().actions()


def build_default_registry() -> ModuleRegistry:
    """Return a registry populated with every built-in driver."""
    from pihub.modules.drivers import BUILTIN_DRIVERS

    registry = ModuleRegistry()
    for driver in BUILTIN_DRIVERS:
        registry.register(driver.KIND, driver)
    return registry
