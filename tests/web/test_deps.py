"""Tests for web middleware and deps edge cases."""

import asyncio
from unittest.mock import MagicMock

from web.deps import USER_AGENT_MAX_LENGTH, AuthMiddleware, DBConnectionMiddleware, _bearer_token, device_from_request


def _request(headers=None, client=("10.1.2.3", 5000)):
    request = MagicMock()
    request.headers = headers or {}
    request.client = MagicMock(host=client[0]) if client else None
    return request


class TestAuthMiddlewareNonHTTP:
    def test_non_http_scope_passes_through(self):
        called = False

        async def inner_app(scope, receive, send):
            nonlocal called
            called = True

        middleware = AuthMiddleware(inner_app)
        asyncio.run(middleware({"type": "websocket"}, None, None))
        assert called


class TestDBConnectionMiddlewareNonHTTP:
    def test_non_http_scope_passes_through(self):
        called = False

        async def inner_app(scope, receive, send):
            nonlocal called
            called = True

        middleware = DBConnectionMiddleware(inner_app)
        asyncio.run(middleware({"type": "lifespan"}, None, None))
        assert called


class TestBearerToken:
    def test_bearer(self):
        assert _bearer_token(_request({"authorization": "Bearer abc"})) == "abc"

    def test_scheme_is_case_insensitive(self):
        assert _bearer_token(_request({"authorization": "bearer abc"})) == "abc"

    def test_other_scheme(self):
        assert _bearer_token(_request({"authorization": "Basic abc"})) == ""

    def test_missing(self):
        assert _bearer_token(_request()) == ""


class TestDeviceFromRequest:
    def test_truncates_user_agent(self):
        device = device_from_request(_request({"user-agent": "x" * 1000}))
        assert len(device.user_agent) == USER_AGENT_MAX_LENGTH
        assert device.ip_address == "10.1.2.3"

    def test_without_client(self):
        assert device_from_request(_request(client=None)).ip_address == "unknown"


class TestConnectionLifecycle:
    def test_connection_closed_after_request(self, client, test_engine, monkeypatch):
        import web.deps as deps_module

        connections = []

        def tracking_engine():
            conn = MagicMock(wraps=test_engine.connect())
            connections.append(conn)
            return MagicMock(connect=lambda: conn)

        monkeypatch.setattr(deps_module, "get_engine", tracking_engine)
        client.get("/me", headers={"Authorization": "Bearer whatever"})

        assert len(connections) == 1
        connections[0].close.assert_called_once()

    def test_no_connection_for_anonymous_public_path(self, client, monkeypatch):
        import web.deps as deps_module

        engine = MagicMock()
        monkeypatch.setattr(deps_module, "get_engine", lambda: engine)

        client.get("/health")

        engine.connect.assert_not_called()
