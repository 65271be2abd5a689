"""Module layer — Module manager.

The manager owns the live module table and is the only component that
creates, routes to, and stops driver instances.

Batch semantics (``initialize_modules``):
  - All-or-nothing.  Every kind is resolved before anything is built; then
    each instance is constructed and initialized in turn.  On the first
    failure every instance built by the attempt is stopped, the previous
    table is left in place, and the error propagates unchanged.
  - Full replacement.  On success the new table is swapped in under the
    write lock and every previously-live module is stopped afterwards.
  - Batches are serialised by a dedicated lock, so acts keep reading the
    old table while a new batch initializes.

Routing (``act``) holds the read lock only for the name lookup; the action
itself runs under the instance's own lock.  An act that reaches an instance
retired by a concurrent swap is re-routed to its replacement.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pihub.exceptions import (
    ConfigValidationError,
    ModuleStateError,
    UnknownModuleError,
    UnknownSourceError,
)
from pihub.logging import get_logger
from pihub.modules.binder import ConfigBinder
from pihub.modules.locks import ReadWriteLock

if TYPE_CHECKING:
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.base import BaseModule
    from pihub.modules.registry import ModuleRegistry

log = get_logger(__name__)


@dataclass(frozen=True)
class ModuleSpec:
    """Desired module: a unique name, a driver kind and its opaque config."""

    name: str
    kind: str
    raw_config: Any = None


@dataclass(frozen=True)
class ActiveModule:
    name: str
    kind: str
    instance: "BaseModule"

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source": self.kind,
            "state": self.instance.state.value,
            "actions": self.instance.actions(),
        }


class ModuleManager:
    """Routes requests to live driver instances.

    Usage::

        manager = ModuleManager(build_default_registry(), provider)
        manager.initialize_modules([ModuleSpec("fan", "relay", {"pin": "GPIO20"})])
        manager.act("fan", "set", {"high": True})
        ...
        manager.shutdown()
    """

    def __init__(self, registry: "ModuleRegistry", provider: "ResourceProvider") -> None:
        self._registry = registry
        self._provider = provider
        self._live: dict[str, ActiveModule] = {}
        self._table_lock = ReadWriteLock()
        self._batch_lock = threading.Lock()

    @property
    def registry(self) -> "ModuleRegistry":
        return self._registry

    @property
    def provider(self) -> "ResourceProvider":
        return self._provider

    def __len__(self) -> int:
        with self._table_lock.read_locked():
            return len(self._live)

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    def initialize_modules(
        self, specs: Mapping[str, ModuleSpec] | Iterable[ModuleSpec]
    ) -> int:
        """Replace the live table with freshly initialized modules.

        Returns the number of live modules.

        Raises:
            UnknownSourceError:    A spec names an unregistered kind.
            ConfigValidationError: Duplicate module names in the batch.
            PiHubError:            Any error raised by a driver's initialize.
        """
        batch = _normalise(specs)
        for spec in batch:
            if spec.kind not in self._registry:
                raise UnknownSourceError(spec.kind, module=spec.name)

        with self._batch_lock:
            built: list[ActiveModule] = []
            try:
                for spec in batch:
                    instance = self._registry.create(spec.kind, module=spec.name)
                    built.append(ActiveModule(spec.name, spec.kind, instance))
                    instance.initialize(self._provider, ConfigBinder(spec.raw_config))
                    log.debug("module_initialized", module=spec.name, kind=spec.kind)
            except Exception as exc:
                log.warning(
                    "modules_initialize_failed",
                    module=built[-1].name if built else None,
                    error=exc,
                    rolled_back=len(built),
                )
                self._stop_all(built, reason="rollback")
                raise

            new_table = {entry.name: entry for entry in built}
            with self._table_lock.write_locked():
                previous, self._live = self._live, new_table

            self._stop_all(list(previous.values()), reason="replaced")
            log.info(
                "modules_initialized",
                num_modules=len(new_table),
                modules=sorted(new_table),
                replaced=len(previous),
            )
            return len(new_table)

    # ------------------------------------------------------------------
    # Act
    # ------------------------------------------------------------------

    def act(self, module: str, action: str, raw_config: Any = None) -> Any:
        """Run *action* on the live module named *module*.

        If a re-initialize replaced the instance between the lookup and the
        call, the action is routed to the instance now live under that name.

        Raises:
            UnknownModuleError: No live module has that name.
            UnknownActionError: The module's driver has no such action.
            PiHubError:         Any error raised by the action.
        """
        entry = self.get(module)
        while True:
            log.debug("module_act", module=module, kind=entry.kind, action=action)
            try:
                return entry.instance.act(action, ConfigBinder(raw_config))
            except ModuleStateError:
                current = self.get(module)
                if current.instance is entry.instance:
                    raise
                log.debug("module_act_rerouted", module=module, action=action)
                entry = current

    # ------------------------------------------------------------------
    # Introspection / shutdown
    # ------------------------------------------------------------------

    def get(self, module: str) -> ActiveModule:
        with self._table_lock.read_locked():
            entry = self._live.get(module)
        if entry is None:
            raise UnknownModuleError(module)
        return entry

    def modules(self) -> list[dict[str, Any]]:
        with self._table_lock.read_locked():
            entries = sorted(self._live.values(), key=lambda e: e.name)
        return [entry.describe() for entry in entries]

    def shutdown(self) -> None:
        """Stop every live module and empty the table."""
        with self._batch_lock:
            with self._table_lock.write_locked():
                previous, self._live = self._live, {}
            self._stop_all(list(previous.values()), reason="shutdown")
        log.info("modules_shutdown", stopped=len(previous))

    def _stop_all(self, entries: list[ActiveModule], reason: str) -> None:
        for entry in entries:
            try:
                entry.instance.stop()
            except Exception as exc:
                log.error(
                    "module_stop_failed",
                    module=entry.name,
                    kind=entry.kind,
                    reason=reason,
                    error=exc,
                )


def _normalise(specs: Mapping[str, ModuleSpec] | Iterable[ModuleSpec]) -> list[ModuleSpec]:
    if isinstance(specs, Mapping):
        batch = []
        for name, spec in specs.items():
            if spec.name != name:
                spec = ModuleSpec(name=name, kind=spec.kind, raw_config=spec.raw_config)
            batch.append(spec)
        return batch

    batch = list(specs)
    seen: set[str] = set()
    for spec in batch:
        if spec.name in seen:
            raise ConfigValidationError(f"Duplicate module name in batch: '{spec.name}'")
        seen.add(spec.name)
    return batch
