"""pihub — Daemon configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. System config: /etc/pihub/config.yaml
    3. User config:   ~/.pihub/config.yaml
    4. An explicit ``--config`` file

Environment variables prefixed with PIHUB_ fill in whatever the files leave
unset (nested keys use ``__``, e.g. ``PIHUB_HARDWARE__BACKEND=mock``).

Call ``Settings.load()`` once at daemon startup and inject the instance
through FastAPI dependencies.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3141, ge=1, le=65535)
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    act_timeout: Annotated[float, Field(gt=0.0, le=600.0)] = Field(
        default=10.0,
        description=(
            "Seconds to wait for a single act call before answering 504. "
            "The hardware operation itself is never interrupted."
        ),
    )


class HardwareConfig(BaseModel):
    backend: Literal["auto", "raspberry_pi", "mock"] = Field(
        default="auto",
        description=(
            "auto — RPi.GPIO/smbus2 on a Raspberry Pi, in-memory mock elsewhere. "
            "raspberry_pi — always use the real backends. "
            "mock — always use the in-memory backends."
        ),
    )
    i2c_bus: Annotated[int, Field(ge=0, le=10)] = Field(
        default=1,
        description="Number of the default I2C bus (/dev/i2c-N).",
    )


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None
    dump_requests: bool = Field(
        default=False,
        description="Log every request body at debug level.",
    )


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PIHUB_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    hardware: HardwareConfig = Field(default_factory=HardwareConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/pihub/config.yaml"),
            Path.home() / ".pihub" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton — replaced by ``Settings.load()`` at daemon startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
