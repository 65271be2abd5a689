"""GET /health — daemon health check."""

from __future__ import annotations

import time

from fastapi import APIRouter

from pihub import __version__
from pihub.api.dependencies import ManagerDep, ProviderDep, RegistryDep
from pihub.api.schemas import HealthResponse

router = APIRouter(tags=["health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Daemon health check")
async def health(
    manager: ManagerDep,
    registry: RegistryDep,
    provider: ProviderDep,
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        backend=provider.backend,
        modules_live=len(manager),
        sources=len(registry),
    )
