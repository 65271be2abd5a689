"""Integration tests — HTTP API end to end over the mock hardware backends."""

from __future__ import annotations

import threading

import pytest
from fastapi.testclient import TestClient

from pihub.api.server import create_app
from pihub.config import Settings
from pihub.hardware.i2c import RegisterI2CDevice


def _init(client: TestClient, modules: dict) -> dict:
    resp = client.post("/initialize", json={"modules": modules})
    return {"status": resp.status_code, **resp.json()}


@pytest.mark.integration
class TestScenarios:
    def test_initialize_single_relay(self, client: TestClient) -> None:
        resp = client.post(
            "/initialize",
            json={"modules": {"fan": {"source": "relay", "config": {"pin": "20"}}}},
        )
        assert resp.status_code == 200
        assert resp.json() == {"num_modules": 1}

    def test_set_relay_drives_pin(self, client: TestClient, mock_gpio) -> None:
        _init(client, {"fan": {"source": "relay", "config": {"pin": "20"}}})

        resp = client.post(
            "/act", json={"module": "fan", "action": "set", "config": {"state": "high"}}
        )

        assert resp.status_code == 200
        assert resp.json() == {"result": {"high": True}}
        assert mock_gpio.line_values[20] == 1

    def test_act_on_missing_module(self, client: TestClient) -> None:
        resp = client.post("/act", json={"module": "missing", "action": "set"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "unknown_module"

    def test_failed_initialize_keeps_previous_table(self, client: TestClient, mock_gpio) -> None:
        _init(client, {"fan": {"source": "relay", "config": {"pin": "20"}}})

        failed = _init(client, {"x": {"source": "bogus", "config": {}}})
        assert failed["status"] == 404
        assert failed["code"] == "unknown_source"

        resp = client.post(
            "/act", json={"module": "fan", "action": "set", "config": {"high": True}}
        )
        assert resp.status_code == 200
        assert mock_gpio.line_values[20] == 1
        assert [m["name"] for m in client.get("/modules").json()] == ["fan"]

    def test_concurrent_i2c_modules_share_the_bus(self, client: TestClient, mock_bus) -> None:
        left, right = RegisterI2CDevice(), RegisterI2CDevice()
        left.registers[0:4] = b"\x01\x02\x03\x04"
        right.registers[0:4] = b"\xf1\xf2\xf3\xf4"
        mock_bus.attach(0x20, left)
        mock_bus.attach(0x21, right)
        mock_bus.transfer_delay_s = 0.001

        assert _init(
            client,
            {
                "left": {"source": "i2c", "config": {"address": 0x20}},
                "right": {"source": "i2c", "config": {"address": 0x21}},
            },
        )["num_modules"] == 2

        results: dict[str, list] = {"left": [], "right": []}

        def worker(name: str) -> None:
            for _ in range(10):
                resp = client.post(
                    "/act",
                    json={
                        "module": name,
                        "action": "transact",
                        "config": {"bytes": [0], "resp_len": 4},
                    },
                )
                results[name].append((resp.status_code, resp.json()))

        threads = [threading.Thread(target=worker, args=(n,)) for n in ("left", "right")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results["left"] == [(200, {"result": {"response": [1, 2, 3, 4]}})] * 10
        assert results["right"] == [(200, {"result": {"response": [0xF1, 0xF2, 0xF3, 0xF4]}})] * 10
        assert mock_bus.max_in_flight == 1


@pytest.mark.integration
class TestErrorStatuses:
    def test_unknown_action_is_404(self, client: TestClient, mock_gpio) -> None:
        _init(client, {"fan": {"source": "relay", "config": {"pin": "20"}}})
        mock_gpio.call_log.clear()

        resp = client.post("/act", json={"module": "fan", "action": "toggle"})

        assert resp.status_code == 404
        assert resp.json()["code"] == "unknown_action"
        assert mock_gpio.call_log == []

    def test_string_config_for_object_driver_is_400(self, client: TestClient) -> None:
        resp = client.post(
            "/initialize", json={"modules": {"fan": {"source": "relay", "config": "{\"pin\": 20}"}}}
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "decode_error"
        assert "must be a JSON object" in resp.json()["error"]

    def test_wrong_field_type_is_400(self, client: TestClient) -> None:
        _init(client, {"fan": {"source": "relay", "config": {"pin": "20"}}})
        resp = client.post(
            "/act", json={"module": "fan", "action": "set", "config": {"high": "maybe"}}
        )
        assert resp.status_code == 400

    def test_missing_required_field_is_422(self, client: TestClient) -> None:
        resp = client.post("/initialize", json={"modules": {"fan": {"source": "relay"}}})
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"
        assert resp.json()["detail"]["errors"][0]["loc"] == ["pin"]

    def test_unknown_pin_is_500(self, client: TestClient) -> None:
        resp = client.post(
            "/initialize",
            json={"modules": {"fan": {"source": "relay", "config": {"pin": "GPIO99"}}}},
        )
        assert resp.status_code == 500
        assert resp.json()["code"] == "hardware_error"

    def test_bus_nack_is_500(self, client: TestClient) -> None:
        _init(client, {"ghost": {"source": "i2c", "config": {"address": 0x33}}})
        resp = client.post(
            "/act",
            json={"module": "ghost", "action": "transact", "config": {"bytes": [0], "resp_len": 1}},
        )
        assert resp.status_code == 500
        assert resp.json()["code"] == "hardware_error"

    @pytest.mark.parametrize(
        "path,body",
        [
            ("/act", {}),
            ("/act", {"module": "fan"}),
            ("/initialize", {}),
            ("/initialize", {"modules": {"fan": {"config": {}}}}),
        ],
    )
    def test_malformed_envelope_is_422(self, client: TestClient, path: str, body: dict) -> None:
        resp = client.post(path, json=body)
        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_request"

    def test_errors_carry_request_id(self, client: TestClient) -> None:
        resp = client.post(
            "/act", json={"module": "nope", "action": "x"}, headers={"X-Request-ID": "abc"}
        )
        assert resp.json()["request_id"] == "abc"
        assert resp.headers["X-Request-ID"] == "abc"


@pytest.mark.integration
class TestActTimeout:
    def test_slow_act_returns_504(self, provider, registry) -> None:
        settings = Settings(server={"act_timeout": 0.05}, hardware={"backend": "mock"})
        app = create_app(settings=settings, provider=provider, registry=registry)
        with TestClient(app) as client:
            _init(client, {"slow": {"source": "recorder", "config": {"delay_s": 0.3}}})
            resp = client.post("/act", json={"module": "slow", "action": "ping"})

        assert resp.status_code == 504
        body = resp.json()
        assert body["code"] == "timeout"
        assert body["detail"]["timeout_s"] == 0.05

    def test_fast_act_within_timeout(self, client: TestClient) -> None:
        _init(client, {"p": {"source": "recorder", "config": {}}})
        resp = client.post("/act", json={"module": "p", "action": "ping"})
        assert resp.status_code == 200
        assert resp.json()["result"] == {"pong": True, "calls": 1}


@pytest.mark.integration
class TestIntrospection:
    def test_health(self, client: TestClient) -> None:
        _init(client, {"e": {"source": "echo"}})
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["backend"] == "mock"
        assert data["modules_live"] == 1
        assert data["sources"] == 9

    def test_sources(self, client: TestClient) -> None:
        sources = client.get("/sources").json()["sources"]
        assert "relay" in sources
        assert "recorder" in sources
        assert sources == sorted(sources)

    def test_modules_reflect_full_replacement(self, client: TestClient) -> None:
        _init(
            client,
            {
                "fan": {"source": "relay", "config": {"pin": "20"}},
                "e": {"source": "echo"},
            },
        )
        _init(client, {"adc": {"source": "ads", "config": {"channel": 1}}})

        assert client.get("/modules").json() == [
            {"name": "adc", "source": "ads", "state": "ready", "actions": ["read"]}
        ]

    def test_config_passes_through_untouched(self, client: TestClient) -> None:
        _init(client, {"e": {"source": "echo"}})
        payload = {"nested": {"list": [1, 2, {"x": None}]}, "flag": False}
        resp = client.post("/act", json={"module": "e", "action": "anything", "config": payload})
        assert resp.json()["result"] == {"action": "anything", "config": payload}

    @pytest.mark.parametrize("payload", ["hello", "42", "{\"x\": 1}", "", 42, None, [1, "2"]])
    def test_scalar_config_passes_through_untouched(self, client: TestClient, payload) -> None:
        _init(client, {"e": {"source": "echo"}})
        resp = client.post("/act", json={"module": "e", "action": "say", "config": payload})
        assert resp.status_code == 200
        assert resp.json()["result"] == {"action": "say", "config": payload}

    def test_ads_read_over_http(self, client: TestClient) -> None:
        _init(client, {"adc": {"source": "ads", "config": {"channel": 1, "data_rate": 860}}})
        resp = client.post("/act", json={"module": "adc", "action": "read"})
        assert resp.json()["result"] == pytest.approx(2.0, abs=1e-3)


@pytest.mark.integration
class TestLifecycle:
    def test_shutdown_stops_modules_and_closes_provider(self, test_settings, provider, registry, mock_bus) -> None:
        app = create_app(settings=test_settings, provider=provider, registry=registry)
        with TestClient(app) as client:
            _init(client, {"left": {"source": "i2c", "config": {"address": 0x20}}})
            manager = app.state.module_manager
            instance = manager.get("left").instance

        assert instance.state.value == "stopped"
        assert provider.status()["closed"] is True
        assert mock_bus.closed
