"""
Test the relay HTTP API end to end through FastAPI's TestClient
"""

import re

import pytest
from fastapi.testclient import TestClient

from fixtures.relay_fixtures import make_settings
from tether.exceptions import StorageError
from tether.services.relay_fastapi import create_app
from tether.storage import InMemorySessionStore

pytestmark = pytest.mark.api


def create(client) -> dict:
    response = client.post("/v1/sessions")
    assert response.status_code == 201
    return response.json()


def messages_url(session: dict) -> str:
    return f"/v1/sessions/{session['sessionId']}/messages"


def post(client, session: dict, body=None, key=None, **kwargs):
    return client.post(
        messages_url(session),
        params={"w": key if key is not None else session["writeKey"]},
        json=body,
        **kwargs
    )


def get(client, session: dict, since=None, key=None):
    params = {"r": key if key is not None else session["readKey"]}
    if since is not None:
        params["since"] = since
    return client.get(messages_url(session), params=params)


class TestCreateSession:

    def test_create_returns_credentials(self, client):
        response = client.post("/v1/sessions")

        assert response.status_code == 201
        assert response.headers["content-type"].startswith("application/json")
        data = response.json()
        assert set(data) == {"sessionId", "writeKey", "readKey", "expiresInSeconds"}
        assert re.match(r'^[0-9a-f]{8}$', data["sessionId"])
        assert re.match(r'^[0-9a-f]{16}$', data["writeKey"])
        assert re.match(r'^[0-9a-f]{16}$', data["readKey"])
        assert data["writeKey"] != data["readKey"]
        assert data["expiresInSeconds"] == 600

    def test_sessions_are_distinct(self, client):
        ids = {create(client)["sessionId"] for _ in range(20)}
        assert len(ids) == 20

    def test_expires_in_follows_ttl(self, store, clock):
        app = create_app(settings=make_settings(session_ttl=90), store=store, clock=clock, configure_logs=False)
        with TestClient(app) as client:
            assert create(client)["expiresInSeconds"] == 90

    def test_app_uses_injected_store_and_settings(self, app, client, store, settings):
        assert len(store) == 0
        assert app.state.store is store
        assert app.state.settings is settings

        create(client)
        assert len(store) == 1

    def test_store_failure_is_init_failure(self, clock):
        class BrokenStore(InMemorySessionStore):
            async def create(self, session_id, record):
                raise StorageError("memory", "create", resource_id=session_id)

        app = create_app(settings=make_settings(), store=BrokenStore(), clock=clock, configure_logs=False)
        with TestClient(app) as client:
            response = client.post("/v1/sessions")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to initialize session"}


class TestRelayScenario:

    def test_post_then_poll(self, client):
        session = create(client)

        first = post(client, session, {"a": 1})
        assert first.status_code == 200
        assert first.json()["seq"] == 1
        assert re.match(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$', first.json()["timestamp"])

        assert post(client, session, {"b": 2}).json()["seq"] == 2

        page = get(client, session, since=0)
        assert page.status_code == 200
        data = page.json()
        assert [m["seq"] for m in data["messages"]] == [1, 2]
        assert [m["body"] for m in data["messages"]] == [{"a": 1}, {"b": 2}]
        assert data["nextSince"] == 2

        assert get(client, session, since=2).json() == {"messages": [], "nextSince": 2}

        forged = post(client, session, {"c": 3}, key="0123456789abcdef")
        assert forged.status_code == 403
        assert forged.json() == {"error": "Invalid write key"}
        assert len(get(client, session).json()["messages"]) == 2

    def test_since_defaults_to_zero(self, client):
        session = create(client)
        post(client, session, [1, 2, 3])

        data = get(client, session).json()
        assert data["messages"][0]["body"] == [1, 2, 3]
        assert data["nextSince"] == 1

    @pytest.mark.parametrize("raw,expected_count,expected_next", [
        ("abc", 3, 3),
        ("-5", 3, 3),
        ("", 3, 3),
        ("2", 1, 3),
        ("2abc", 1, 3),
        ("  1", 2, 3),
        ("9", 0, 9),
    ])
    def test_since_parsing(self, client, raw, expected_count, expected_next):
        session = create(client)
        for i in range(3):
            post(client, session, {"n": i})

        data = get(client, session, since=raw).json()
        assert len(data["messages"]) == expected_count
        assert data["nextSince"] == expected_next

    def test_wrong_read_key(self, client):
        session = create(client)
        response = get(client, session, key=session["writeKey"])

        assert response.status_code == 403
        assert response.json() == {"error": "Invalid read key"}

    def test_missing_keys_are_forbidden(self, client):
        session = create(client)
        assert client.get(messages_url(session)).status_code == 403
        assert client.post(messages_url(session), json={}).status_code == 403


class TestMessageLimits:

    def test_oversize_body_rejected(self, client):
        session = create(client)
        body = b'{"x": "' + b'a' * 70000 + b'"}'

        response = client.post(
            messages_url(session),
            params={"w": session["writeKey"]},
            content=body,
            headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 413
        assert response.json() == {"error": "Payload too large"}
        assert get(client, session).json()["messages"] == []

    def test_malformed_body_rejected(self, client):
        session = create(client)
        response = client.post(
            messages_url(session),
            params={"w": session["writeKey"]},
            content=b'{"unterminated": ',
            headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON body"}

    def test_capacity(self, client):
        session = create(client)
        for i in range(60):
            assert post(client, session, {"n": i}).status_code == 200

        response = post(client, session, {"n": 60})
        assert response.status_code == 429
        assert response.json() == {"error": "Message limit reached"}
        assert len(get(client, session).json()["messages"]) == 60


class TestExpiry:

    def test_expired_session_is_gone(self, client, clock):
        session = create(client)
        clock.advance(601)

        for response in (post(client, session, {"a": 1}), get(client, session)):
            assert response.status_code == 410
            assert response.json() == {"error": "Session expired"}

        clock.advance(3600)
        assert get(client, session).status_code == 410

    def test_activity_keeps_session_alive(self, client, clock):
        session = create(client)
        for _ in range(3):
            clock.advance(590)
            assert get(client, session).status_code == 200


class TestRouting:

    def test_unknown_session(self, client):
        response = client.get("/v1/sessions/deadbeef/messages", params={"r": "x"})
        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}

    @pytest.mark.parametrize("session_id", ["DEADBEEF", "deadbee", "deadbeef0", "xyz12345", "dead%20beef"])
    def test_malformed_session_id(self, client, session_id):
        response = client.get(f"/v1/sessions/{session_id}/messages", params={"r": "x"})

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}

    def test_malformed_session_id_never_reaches_registry(self, client, app):
        client.post("/v1/sessions/NOT-HEX!/messages", json={})
        assert len(app.state.registry) == 0

    @pytest.mark.parametrize("method,path", [
        ("GET", "/"),
        ("GET", "/v1/sessions"),
        ("POST", "/v1/sessions/"),
        ("PUT", "/v1/sessions/deadbeef/messages"),
        ("DELETE", "/v1/sessions/deadbeef/messages"),
        ("GET", "/v1/sessions/deadbeef/messages/"),
        ("GET", "/docs"),
        ("GET", "/openapi.json"),
    ])
    def test_route_not_found(self, client, method, path):
        response = client.request(method, path)

        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unexpected_error_is_json_500(self, client, app, monkeypatch):
        def explode(session_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(app.state.registry, "resolve", explode)
        response = client.post("/v1/sessions")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert response.headers["access-control-allow-origin"] == "*"

    def test_storage_outage_is_503(self, client, app, monkeypatch):
        session = create(client)

        async def unavailable(session_id):
            raise StorageError("memory", "load", resource_id=session_id)

        monkeypatch.setattr(app.state.store, "load", unavailable)
        response = get(client, session)

        assert response.status_code == 503
        assert response.json() == {"error": "Storage unavailable"}

    def test_trace_id_echoed(self, client):
        response = client.post("/v1/sessions", headers={"X-Trace-ID": "tether-test-1"})
        assert response.headers["x-trace-id"] == "tether-test-1"

        generated = client.post("/v1/sessions").headers["x-trace-id"]
        assert generated.startswith("tether-")


class TestCORS:

    def assert_common_headers(self, response):
        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"
        assert response.headers["access-control-max-age"] == "86400"
        assert response.headers["vary"] == "Origin"

    def test_open_by_default(self, client):
        response = client.post("/v1/sessions", headers={"Origin": "https://anywhere.example"})

        assert response.headers["access-control-allow-origin"] == "*"
        self.assert_common_headers(response)

    @pytest.mark.parametrize("path", ["/v1/sessions", "/v1/sessions/deadbeef/messages", "/anything/else"])
    def test_preflight(self, client, app, path):
        response = client.options(path, headers={
            "Origin": "https://anywhere.example",
            "Access-Control-Request-Method": "POST"
        })

        assert response.status_code == 204
        assert response.content == b""
        self.assert_common_headers(response)
        assert len(app.state.registry) == 0

    def test_errors_carry_cors_headers(self, client):
        response = client.get("/v1/sessions/deadbeef/messages", params={"r": "x"})
        assert response.status_code == 404
        assert response.headers["access-control-allow-origin"] == "*"
        self.assert_common_headers(response)

    @pytest.fixture
    def restricted_client(self, store, clock):
        settings = make_settings(allowed_origins="https://sender.example,https://viewer.example")
        app = create_app(settings=settings, store=store, clock=clock, configure_logs=False)
        with TestClient(app) as test_client:
            yield test_client

    def test_allowed_origin_reflected(self, restricted_client):
        response = restricted_client.post("/v1/sessions", headers={"Origin": "https://viewer.example"})

        assert response.headers["access-control-allow-origin"] == "https://viewer.example"
        self.assert_common_headers(response)

    def test_unlisted_origin_not_reflected(self, restricted_client):
        response = restricted_client.post("/v1/sessions", headers={"Origin": "https://evil.example"})

        assert response.status_code == 201
        assert "access-control-allow-origin" not in response.headers
        assert response.headers["vary"] == "Origin"

    def test_restricted_preflight(self, restricted_client):
        allowed = restricted_client.options("/v1/sessions", headers={"Origin": "https://sender.example"})
        denied = restricted_client.options("/v1/sessions", headers={"Origin": "https://evil.example"})

        assert allowed.status_code == denied.status_code == 204
        assert allowed.headers["access-control-allow-origin"] == "https://sender.example"
        assert "access-control-allow-origin" not in denied.headers
