"""POST /initialize, POST /act, GET /modules, GET /sources

Manager calls block on hardware, so each runs in a worker thread and
requests execute in parallel.  ``act`` is bounded by ``server.act_timeout``;
on expiry the client gets 504 while the worker finishes its hardware
sequence in the background.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from pihub.api.dependencies import ConfigDep, ManagerDep, RegistryDep
from pihub.api.middleware import error_response
from pihub.api.schemas import (
    ActRequest,
    ActResponse,
    ErrorResponse,
    InitializeRequest,
    InitializeResponse,
    ModuleInfo,
    SourcesResponse,
)
from pihub.logging import bind_request_context, get_logger
from pihub.modules.manager import ModuleSpec

log = get_logger(__name__)

router = APIRouter(tags=["modules"])

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post(
    "/initialize",
    response_model=InitializeResponse,
    responses=_ERRORS,
    summary="Replace the live module set",
)
async def initialize(body: InitializeRequest, manager: ManagerDep) -> InitializeResponse:
    specs = {
        name: ModuleSpec(name=name, kind=spec.source, raw_config=spec.config)
        for name, spec in body.modules.items()
    }
    num_modules = await asyncio.to_thread(manager.initialize_modules, specs)
    return InitializeResponse(num_modules=num_modules)


@router.post(
    "/act",
    response_model=ActResponse,
    responses={**_ERRORS, 504: {"model": ErrorResponse}},
    summary="Run an action on a live module",
)
async def act(
    body: ActRequest,
    request: Request,
    manager: ManagerDep,
    config: ConfigDep,
) -> ActResponse | JSONResponse:
    bind_request_context(module=body.module, action=body.action)
    timeout = config.server.act_timeout
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(manager.act, body.module, body.action, body.config),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        log.warning("act_timeout", module=body.module, action=body.action, timeout_s=timeout)
        return error_response(
            request,
            504,
            "timeout",
            f"Action '{body.action}' on '{body.module}' did not finish within {timeout}s",
            {"module": body.module, "action": body.action, "timeout_s": timeout},
        )
    return ActResponse(result=result)


@router.get("/modules", response_model=list[ModuleInfo], summary="List live modules")
async def list_modules(manager: ManagerDep) -> list[ModuleInfo]:
    return [ModuleInfo(**entry) for entry in manager.modules()]


@router.get("/sources", response_model=SourcesResponse, summary="List registered driver kinds")
async def list_sources(registry: RegistryDep) -> SourcesResponse:
    return SourcesResponse(sources=registry.kinds())
