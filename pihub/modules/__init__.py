"""Module layer — module contract, config binder, registry and manager."""

from pihub.modules.base import BaseModule, ModuleState
from pihub.modules.binder import BindModel, ConfigBinder
from pihub.modules.manager import ActiveModule, ModuleManager, ModuleSpec
from pihub.modules.registry import ModuleRegistry, build_default_registry

__all__ = [
    "ActiveModule",
    "BaseModule",
    "BindModel",
    "ConfigBinder",
    "ModuleManager",
    "ModuleRegistry",
    "ModuleSpec",
    "ModuleState",
    "build_default_registry",
]
