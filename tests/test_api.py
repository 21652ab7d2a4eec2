"""End-to-end tests for the websocket stream, page and health endpoints."""

from __future__ import annotations

import time

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketDenialResponse
from starlette.websockets import WebSocketDisconnect

from confsync.config import Settings
from confsync.errors import TransportSetupError
from confsync.main import create_app
from confsync.routers.page import render_page
from confsync.schemas import BallConfig
from confsync.session import CLOSE_INVALID_PAYLOAD, GET_CONFIG_COMMAND, ClientSession
from confsync.source import ConfigSource

from conftest import GREEN_BALLS, RED_BALLS

UNAVAILABLE = {"error": "Configuration not available."}


def _settings(**overrides) -> Settings:
    fields = {
        "config_source_url": "http://upstream.test/config",
        "config_schema": "ball",
        "poll_interval_s": 5.0,
        "page_ball_count": 12,
    }
    fields.update(overrides)
    return Settings(**fields)


def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.005)


@pytest.fixture
def app():
    return create_app(_settings(), start_poller=False)


@pytest.fixture
def client(app):
    with TestClient(app) as tc:
        yield tc


# ── WebSocket /ws/ ───────────────────────────────────────────────


class TestWebSocket:
    def test_unavailable_before_first_fetch(self, client):
        with client.websocket_connect("/ws/") as ws:
            assert ws.receive_json() == UNAVAILABLE

    def test_first_message_is_latest_config(self, client, app, green, red):
        app.state.shared_config.write(green)
        app.state.shared_config.write(red)
        with client.websocket_connect("/ws/") as ws:
            assert ws.receive_json() == RED_BALLS

    def test_broadcast_reaches_all_clients_once(self, client, app, green, red):
        hub = app.state.hub
        shared = app.state.shared_config
        with client.websocket_connect("/ws/") as ws1, client.websocket_connect(
            "/ws/"
        ) as ws2, client.websocket_connect("/ws/") as ws3:
            clients = (ws1, ws2, ws3)
            for ws in clients:
                assert ws.receive_json() == UNAVAILABLE

            shared.write(green)
            assert hub.broadcast(green) == 3
            for ws in clients:
                assert ws.receive_json() == GREEN_BALLS

            # A duplicate green frame would show up before the reply below.
            shared.write(red)
            for ws in clients:
                ws.send_text(GET_CONFIG_COMMAND)
                assert ws.receive_json() == RED_BALLS

    def test_get_config_returns_snapshot_again(self, client, app, green):
        app.state.shared_config.write(green)
        with client.websocket_connect("/ws/") as ws:
            first = ws.receive_json()
            ws.send_text(GET_CONFIG_COMMAND)
            assert ws.receive_json() == first == GREEN_BALLS

    def test_unrecognized_message_produces_no_reply(self, client, app, green, red):
        app.state.shared_config.write(green)
        with client.websocket_connect("/ws/") as ws:
            assert ws.receive_json() == GREEN_BALLS
            ws.send_text("hello there")
            app.state.shared_config.write(red)
            ws.send_text(GET_CONFIG_COMMAND)
            assert ws.receive_json() == RED_BALLS

    def test_disconnected_client_does_not_block_others(self, client, app, green):
        hub = app.state.hub
        with client.websocket_connect("/ws/") as ws1, client.websocket_connect(
            "/ws/"
        ) as ws2:
            ws1.receive_json()
            ws2.receive_json()
            with client.websocket_connect("/ws/") as leaving:
                leaving.receive_json()
                _wait_until(lambda: len(hub) == 3)

            hub.broadcast(green)
            assert ws1.receive_json() == GREEN_BALLS
            assert ws2.receive_json() == GREEN_BALLS
            _wait_until(lambda: len(hub) == 2)

        _wait_until(lambda: len(hub) == 0)
        assert hub.snapshot()["deregistered"] == 3

    def test_invalid_utf8_frame_closes_session(self, client, app):
        with client.websocket_connect("/ws/") as ws:
            ws.receive_json()
            ws.send_bytes(b"\xff\xfe")
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
        assert exc.value.code == CLOSE_INVALID_PAYLOAD
        _wait_until(lambda: len(app.state.hub) == 0)

    def test_leaving_with_undelivered_frames_ends_cleanly(self, client, app, green, red):
        hub = app.state.hub
        with client.websocket_connect("/ws/") as ws:
            ws.receive_json()
            for cfg in (green, red, green):
                hub.broadcast(cfg)
        _wait_until(lambda: len(hub) == 0)
        assert hub.snapshot()["deregistered"] == 1

    def test_failed_upgrade_gets_server_error(self, app, monkeypatch):
        async def refuse(self):
            raise TransportSetupError("websocket accept failed: handshake lost")

        monkeypatch.setattr(ClientSession, "_accept", refuse)
        with TestClient(app) as tc:
            with pytest.raises(WebSocketDenialResponse) as exc:
                with tc.websocket_connect("/ws/"):
                    pass
        assert exc.value.status_code == 500
        assert exc.value.json() == {"error": "websocket_setup_failed"}
        assert len(app.state.hub) == 0


# ── GET / ────────────────────────────────────────────────────────


class TestPage:
    def test_page_renders_blue_balls_without_config(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        body = resp.text
        assert "<title>Balls Color</title>" in body
        assert body.count("class='ball'") == 12
        assert "background-color: blue" in body
        assert "'/ws/'" in body

    def test_page_uses_current_config(self, client, app, green):
        app.state.shared_config.write(green)
        body = client.get("/").text
        assert "background-color: green" in body
        assert "width: 20px" in body

    def test_page_escapes_upstream_colour(self):
        hostile = BallConfig(
            ball_color="red'></div><script>alert(1)</script><div '",
            ball_size=10,
            ball_speed=1,
            number_of_balls=1,
        )
        body = render_page(hostile, 1)
        assert "<script>alert(1)" not in body
        assert "background-color: red&#x27;&gt;&lt;/div&gt;" in body

    def test_feature_flag_turns_balls_green(self, feature_on):
        app = create_app(_settings(config_schema="feature"), start_poller=False)
        app.state.shared_config.write(feature_on)
        with TestClient(app) as tc:
            assert "background-color: green" in tc.get("/").text


# ── GET /health ──────────────────────────────────────────────────


class TestHealth:
    def test_waiting_before_first_fetch(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "waiting"
        assert data["config_schema"] == "ball"
        assert data["shared"]["available"] is False
        assert data["hub"]["active_sessions"] == 0
        assert data["poller"]["cycles"] == 0

    def test_ok_after_config_written(self, client, app, green):
        app.state.shared_config.write(green)
        with client.websocket_connect("/ws/") as ws:
            ws.receive_json()
            data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["shared"]["config"] == GREEN_BALLS
        assert data["hub"]["active_sessions"] == 1


# ── Poller wired through the lifespan ────────────────────────────


def _source(handler) -> ConfigSource:
    return ConfigSource(
        "http://upstream.test/config",
        BallConfig,
        transport=httpx.MockTransport(handler),
    )


def test_lifespan_poller_pushes_upstream_config():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=GREEN_BALLS)

    app = create_app(_settings(poll_interval_s=0.02), source=_source(handler))
    with TestClient(app) as tc:
        with tc.websocket_connect("/ws/") as ws:
            for _ in range(50):
                if ws.receive_json() == GREEN_BALLS:
                    break
            else:
                pytest.fail("upstream config never reached the client")
        assert tc.get("/health").json()["status"] == "ok"
    assert not app.state.poller.running


def test_lifespan_poller_failure_leaves_clients_on_marker():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    app = create_app(_settings(poll_interval_s=0.02), source=_source(handler))
    with TestClient(app) as tc:
        _wait_until(lambda: app.state.poller.snapshot()["failed"] >= 2)
        with tc.websocket_connect("/ws/") as ws:
            assert ws.receive_json() == UNAVAILABLE
        data = tc.get("/health").json()
    assert data["status"] == "waiting"
    assert data["poller"]["ok"] == 0
    assert data["hub"]["broadcasts"] == 0
    assert "connection refused" in data["poller"]["last_error"]
