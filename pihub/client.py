"""pihub HTTP client.

Provides both synchronous (``PiHubClient``) and asynchronous
(``AsyncPiHubClient``) wrappers around the daemon REST API.
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx

DEFAULT_BASE_URL = "http://127.0.0.1:3141"


class PiHubClientError(Exception):
    """The daemon answered with a non-2xx status.

    ``code`` and ``body`` come from the daemon's error response when it sent
    one (``{"error", "code", "detail", "request_id"}``).
    """

    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self.body = body
        if isinstance(body, dict):
            self.code = body.get("code")
            message = body.get("error") or str(body)
        else:
            self.code = None
            message = str(body)
        super().__init__(f"HTTP {status_code}: {message}")


def _modules_body(modules: Mapping[str, Any]) -> dict[str, Any]:
    """Accept ``{name: {"source", "config"}}`` or ``{name: (source, config)}``."""
    body: dict[str, Any] = {}
    for name, spec in modules.items():
        if isinstance(spec, (tuple, list)):
            source, config = spec
            body[name] = {"source": source, "config": config}
        else:
            body[name] = dict(spec)
    return {"modules": body}


def _decode(resp: httpx.Response) -> Any:
    try:
        data = resp.json()
    except ValueError:
        data = resp.text
    if resp.is_error:
        raise PiHubClientError(resp.status_code, data)
    return data


class PiHubClient:
    """Synchronous HTTP client for the pihub daemon.

    Usage::

        with PiHubClient("http://raspberrypi.local:3141") as hub:
            hub.initialize({"fan": {"source": "relay", "config": {"pin": "20"}}})
            hub.act("fan", "set", {"high": True})
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def health(self) -> dict[str, Any]:
        return _decode(self._http.get("/health"))  # type: ignore[no-any-return]

    def list_modules(self) -> list[dict[str, Any]]:
        return _decode(self._http.get("/modules"))  # type: ignore[no-any-return]

    def list_sources(self) -> list[str]:
        return _decode(self._http.get("/sources"))["sources"]  # type: ignore[no-any-return]

    def initialize(self, modules: Mapping[str, Any]) -> int:
        """Replace the daemon's module set; return the number of live modules."""
        data = _decode(self._http.post("/initialize", json=_modules_body(modules)))
        return int(data["num_modules"])

    def act(self, module: str, action: str, config: Any = None) -> Any:
        """Run *action* on *module* and return its result."""
        body = {"module": module, "action": action, "config": config}
        return _decode(self._http.post("/act", json=body))["result"]

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "PiHubClient":
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()


class AsyncPiHubClient:
    """Async variant of :class:`PiHubClient` for use inside event loops."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def health(self) -> dict[str, Any]:
        return _decode(await self._http.get("/health"))  # type: ignore[no-any-return]

    async def list_modules(self) -> list[dict[str, Any]]:
        return _decode(await self._http.get("/modules"))  # type: ignore[no-any-return]

    async def list_sources(self) -> list[str]:
        return _decode(await self._http.get("/sources"))["sources"]  # type: ignore[no-any-return]

    async def initialize(self, modules: Mapping[str, Any]) -> int:
        data = _decode(await self._http.post("/initialize", json=_modules_body(modules)))
        return int(data["num_modules"])

    async def act(self, module: str, action: str, config: Any = None) -> Any:
        body = {"module": module, "action": action, "config": config}
        return _decode(await self._http.post("/act", json=body))["result"]

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "AsyncPiHubClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
