"""Unit tests — PiHubClient / AsyncPiHubClient over httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from pihub.client import AsyncPiHubClient, PiHubClient, PiHubClientError


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/health":
        return httpx.Response(200, json={"status": "ok", "version": "0.1.0"})
    if path == "/modules":
        return httpx.Response(200, json=[{"name": "fan", "source": "relay", "state": "ready", "actions": ["get", "set"]}])
    if path == "/sources":
        return httpx.Response(200, json={"sources": ["echo", "relay"]})
    if path == "/initialize":
        body = json.loads(request.content)
        return httpx.Response(200, json={"num_modules": len(body["modules"]), "echo": body})
    if path == "/act":
        body = json.loads(request.content)
        if body["module"] != "fan":
            return httpx.Response(
                404,
                json={"error": f"No such module: '{body['module']}'", "code": "unknown_module"},
            )
        return httpx.Response(200, json={"result": {"high": body["config"]["high"]}})
    return httpx.Response(502, text="bad gateway")


@pytest.fixture
def hub() -> PiHubClient:
    return PiHubClient(base_url="http://hub", transport=httpx.MockTransport(_handler))


@pytest.mark.unit
class TestPiHubClient:
    def test_health(self, hub: PiHubClient) -> None:
        assert hub.health()["status"] == "ok"

    def test_list_modules(self, hub: PiHubClient) -> None:
        assert hub.list_modules()[0]["name"] == "fan"

    def test_list_sources(self, hub: PiHubClient) -> None:
        assert hub.list_sources() == ["echo", "relay"]

    def test_initialize_returns_count(self, hub: PiHubClient) -> None:
        count = hub.initialize(
            {"fan": {"source": "relay", "config": {"pin": "20"}}, "e": ("echo", None)}
        )
        assert count == 2

    def test_initialize_body_shape(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"num_modules": 1})

        with PiHubClient(base_url="http://hub", transport=httpx.MockTransport(handler)) as hub:
            hub.initialize({"fan": ("relay", {"pin": "20"})})

        assert seen == [{"modules": {"fan": {"source": "relay", "config": {"pin": "20"}}}}]

    def test_act_returns_result(self, hub: PiHubClient) -> None:
        assert hub.act("fan", "set", {"high": True}) == {"high": True}

    def test_error_response_raises(self, hub: PiHubClient) -> None:
        with pytest.raises(PiHubClientError) as exc_info:
            hub.act("pump", "set", {"high": True})
        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "unknown_module"
        assert "pump" in str(exc_info.value)

    def test_non_json_error(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        with PiHubClient(base_url="http://hub", transport=transport) as hub:
            with pytest.raises(PiHubClientError) as exc_info:
                hub.health()
        assert exc_info.value.code is None
        assert exc_info.value.body == "bad gateway"


@pytest.mark.unit
class TestAsyncPiHubClient:
    @pytest.mark.asyncio
    async def test_round_trip(self) -> None:
        async with AsyncPiHubClient(
            base_url="http://hub", transport=httpx.MockTransport(_handler)
        ) as hub:
            assert (await hub.health())["status"] == "ok"
            assert await hub.list_sources() == ["echo", "relay"]
            assert await hub.initialize({"fan": ("relay", {"pin": "20"})}) == 1
            assert await hub.act("fan", "set", {"high": False}) == {"high": False}
            assert len(await hub.list_modules()) == 1

    @pytest.mark.asyncio
    async def test_error_response_raises(self) -> None:
        async with AsyncPiHubClient(
            base_url="http://hub", transport=httpx.MockTransport(_handler)
        ) as hub:
            with pytest.raises(PiHubClientError):
                await hub.act("pump", "get")
