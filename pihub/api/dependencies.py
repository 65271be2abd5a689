"""API layer — FastAPI dependency injection.

The provider, registry and manager are created once at startup, attached
to ``app.state`` and injected via FastAPI's dependency system.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from pihub.config import Settings
from pihub.hardware.provider import ResourceProvider
from pihub.modules.manager import ModuleManager
from pihub.modules.registry import ModuleRegistry


def get_module_manager(request: Request) -> ModuleManager:
    return request.app.state.module_manager  # type: ignore[no-any-return]


def get_module_registry(request: Request) -> ModuleRegistry:
    return request.app.state.module_registry  # type: ignore[no-any-return]


def get_resource_provider(request: Request) -> ResourceProvider:
    return request.app.state.resource_provider  # type: ignore[no-any-return]


def get_config(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


# Shorthand type aliases for route signatures.
ManagerDep = Annotated[ModuleManager, Depends(get_module_manager)]
RegistryDep = Annotated[ModuleRegistry, Depends(get_module_registry)]
ProviderDep = Annotated[ResourceProvider, Depends(get_resource_provider)]
ConfigDep = Annotated[Settings, Depends(get_config)]
