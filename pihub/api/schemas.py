"""API layer — Request and response schemas.

These are the external API contracts.  Per-module ``config`` values are
kept as opaque JSON and handed to the driver untouched; only the driver's
own binder gives them a shape.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ModuleSpecBody(BaseModel):
    source: str = Field(min_length=1, description="Driver kind, e.g. 'relay' or 'htg3535ch'.")
    config: Any = Field(default=None, description="Driver-specific configuration.")


class InitializeRequest(BaseModel):
    """POST /initialize — replace the live module set."""

    modules: dict[str, ModuleSpecBody] = Field(
        description="Module name → spec.  Names must be unique (it is a mapping)."
    )


class ActRequest(BaseModel):
    """POST /act — run one action on a live module."""

    module: str = Field(min_length=1)
    action: str = Field(min_length=1)
    config: Any = Field(default=None, description="Action-specific payload.")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class InitializeResponse(BaseModel):
    num_modules: int


class ActResponse(BaseModel):
    result: Any = None


class ModuleInfo(BaseModel):
    name: str
    source: str
    state: str
    actions: list[str]


class SourcesResponse(BaseModel):
    sources: list[str]


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    uptime_seconds: float
    backend: str
    modules_live: int
    sources: int


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: Any | None = None
    request_id: str | None = None
