"""API layer — FastAPI application factory.

``create_app()`` is the single entry point for building the FastAPI app.
All dependencies are wired here so that tests can override them by
calling ``create_app()`` with custom objects.
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from pihub import __version__
from pihub.api.middleware import (
    AccessLogMiddleware,
    RequestDumpMiddleware,
    RequestIDMiddleware,
    build_error_handler,
    build_fallback_handler,
    build_validation_handler,
)
from pihub.api.routes import health, modules
from pihub.config import Settings, get_settings
from pihub.exceptions import PiHubError
from pihub.hardware.provider import ResourceProvider
from pihub.logging import configure_logging, get_logger
from pihub.modules.manager import ModuleManager
from pihub.modules.registry import ModuleRegistry, build_default_registry

log = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    provider: ResourceProvider | None = None,
    registry: ModuleRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override (used in tests).
        provider: Optional pre-built resource provider (e.g. over mock
                  backends).  Built from ``settings.hardware`` otherwise.
        registry: Optional driver registry.  Defaults to the built-ins.

    Returns:
        A fully configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )

    app = FastAPI(
        title="pihub",
        description="Network-addressable hardware hub for Raspberry Pi class boards.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters — outermost applied last)
    if settings.logging.dump_requests:
        app.add_middleware(RequestDumpMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Exception handlers
    app.add_exception_handler(PiHubError, build_error_handler())  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, build_validation_handler())  # type: ignore[arg-type]
    app.add_exception_handler(Exception, build_fallback_handler())

    # Routers
    app.include_router(health.router)
    app.include_router(modules.router)

    # Startup / shutdown lifecycle
    @app.on_event("startup")
    async def startup() -> None:
        log.info("daemon_starting", version=__version__)

        hw = provider if provider is not None else ResourceProvider.from_config(settings.hardware)
        reg = registry if registry is not None else build_default_registry()
        manager = ModuleManager(reg, hw)

        # Attach to app state for dependency injection.
        app.state.settings = settings
        app.state.resource_provider = hw
        app.state.module_registry = reg
        app.state.module_manager = manager

        log.info(
            "daemon_ready",
            host=settings.server.host,
            port=settings.server.port,
            backend=hw.backend,
            sources=reg.kinds(),
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("daemon_stopping")
        if hasattr(app.state, "module_manager"):
            await asyncio.to_thread(app.state.module_manager.shutdown)
        if hasattr(app.state, "resource_provider"):
            try:
                app.state.resource_provider.close()
            except PiHubError as exc:
                log.error("resource_provider_close_failed", error=exc)

    return app
