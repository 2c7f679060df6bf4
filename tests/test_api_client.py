"""Tests for ApiClient: envelopes, token refresh retry and request aborts."""

import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest

from quickmeet.client.api import AbortController, ApiClient
from quickmeet.config import Settings
from quickmeet.models import BookRoomRequest

UNAUTHORIZED = {"status": "error", "message": "Not signed in.", "data": {"redirect": "/signin"}}


def _envelope(data=None, message=None):
    return {"status": "success", "message": message, "data": data}


class FakeBackend:
    """Route table for httpx.MockTransport that records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request):
        self.calls.append((request.method, request.url.path))
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"status": "error", "message": "no route"})
        return handler(request)

    def count(self, method, path):
        return self.calls.count((method, path))


def _client(backend, **kwargs):
    return ApiClient("http://backend.test", transport=httpx.MockTransport(backend), **kwargs)


# ── Envelopes ──────────────────────────────────────────────────────


class TestEnvelopes:
    async def test_success(self):
        backend = FakeBackend({("GET", "/api/floors"): lambda r: httpx.Response(200, json=_envelope(["F1"]))})
        api = _client(backend)

        res = await api.get_floors()

        assert res.status == "success"
        assert res.data == ["F1"]

    async def test_server_error_envelope_is_surfaced(self):
        body = {"status": "error", "message": "Oak is already booked for that time", "data": None}
        backend = FakeBackend({("POST", "/api/room"): lambda r: httpx.Response(409, json=body)})
        api = _client(backend)

        res = await api.create_event(BookRoomRequest(
            start_time="2026-03-16T10:00:00+05:30", duration=30,
            time_zone="Asia/Kolkata", room="oak@r",
        ))

        assert res.status == "error"
        assert res.message == "Oak is already booked for that time"

    async def test_non_json_error(self):
        backend = FakeBackend({("GET", "/api/floors"): lambda r: httpx.Response(502, text="bad gateway")})
        api = _client(backend)

        res = await api.get_floors()

        assert res.status == "error"
        assert res.message == "Something went wrong"

    async def test_network_error(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = _client(FakeBackend({("GET", "/api/floors"): boom}))

        res = await api.get_floors()

        assert res.status == "error"
        assert res.message == "Something went wrong"

    async def test_default_headers(self):
        seen = {}

        def capture(request):
            seen.update(request.headers)
            return httpx.Response(200, json=_envelope(12))

        api = _client(
            FakeBackend({("GET", "/api/highest-seat-count"): capture}),
            app_environment="chrome",
            mock_calendar=True,
        )

        await api.get_max_seat_count()

        assert seen["x-mock-api"] == "true"
        assert seen["x-app-environment"] == "chrome"

    async def test_create_event_sends_wire_names(self):
        seen = {}

        def capture(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json=_envelope({"room": "Oak"}))

        api = _client(FakeBackend({("POST", "/api/room"): capture}))
        await api.create_event(BookRoomRequest(
            start_time="2026-03-16T10:00:00+05:30", duration=30,
            time_zone="Asia/Kolkata", room="oak@r", create_conference=True,
        ))

        assert seen["startTime"] == "2026-03-16T10:00:00+05:30"
        assert seen["createConference"] is True
        assert seen["timeZone"] == "Asia/Kolkata"
        assert "floor" not in seen

    async def test_update_event_includes_event_id(self):
        seen = {}

        def capture(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json=_envelope({}))

        api = _client(FakeBackend({("PUT", "/api/room"): capture}))
        await api.update_event("evt1", BookRoomRequest(
            start_time="2026-03-16T10:00:00Z", duration=60, time_zone="UTC", room="oak@r",
        ))

        assert seen["eventId"] == "evt1"
        assert seen["duration"] == 60

    def test_from_settings(self):
        api = ApiClient.from_settings(Settings(environment="development"))
        assert api._client.timeout.read == 1000.0
        assert api._client.headers["x-mock-api"] == "true"


# ── 401 handling ───────────────────────────────────────────────────


class TestTokenRefresh:
    async def test_refresh_then_single_retry(self):
        attempts = {"n": 0}

        def floors(request):
            attempts["n"] += 1
            if attempts["n"] == 1:
                return httpx.Response(401, json=UNAUTHORIZED)
            return httpx.Response(200, json=_envelope(["F1", "F2"]))

        backend = FakeBackend({
            ("GET", "/api/floors"): floors,
            ("GET", "/auth/token/refresh"): lambda r: httpx.Response(200, json=_envelope({"refreshed": True})),
        })
        navigated = []
        api = _client(backend, navigate=navigated.append)

        res = await api.get_floors()

        assert res.status == "success"
        assert res.data == ["F1", "F2"]
        assert backend.count("GET", "/api/floors") == 2
        assert backend.count("GET", "/auth/token/refresh") == 1
        assert navigated == []

    async def test_failed_refresh_logs_out(self):
        backend = FakeBackend({
            ("GET", "/api/floors"): lambda r: httpx.Response(401, json=UNAUTHORIZED),
            ("GET", "/auth/token/refresh"): lambda r: httpx.Response(401, json=UNAUTHORIZED),
            ("POST", "/auth/logout"): lambda r: httpx.Response(200, json=_envelope(True)),
        })
        navigated = []
        api = _client(backend, navigate=navigated.append)

        res = await api.get_floors()

        assert res.status == "error"
        assert res.message == "Not signed in."
        assert backend.count("GET", "/api/floors") == 1
        assert backend.count("POST", "/auth/logout") == 1
        assert navigated == ["/signin"]

    async def test_second_401_is_not_retried(self):
        backend = FakeBackend({
            ("GET", "/api/floors"): lambda r: httpx.Response(401, json=UNAUTHORIZED),
            ("GET", "/auth/token/refresh"): lambda r: httpx.Response(200, json=_envelope({"refreshed": True})),
        })
        api = _client(backend)

        res = await api.get_floors()

        assert res.status == "error"
        assert backend.count("GET", "/api/floors") == 2
        assert backend.count("GET", "/auth/token/refresh") == 1

    async def test_async_navigate_is_awaited(self):
        backend = FakeBackend({
            ("GET", "/api/floors"): lambda r: httpx.Response(401, json=UNAUTHORIZED),
            ("GET", "/auth/token/refresh"): lambda r: httpx.Response(401, json=UNAUTHORIZED),
            ("POST", "/auth/logout"): lambda r: httpx.Response(200, json=_envelope(True)),
        })
        navigated = []

        async def navigate(route):
            navigated.append(route)

        api = _client(backend, navigate=navigate)
        await api.get_floors()

        assert navigated == ["/signin"]


# ── Aborts ─────────────────────────────────────────────────────────


class TestAbort:
    async def test_abort_in_flight_request(self):
        started = asyncio.Event()

        async def slow(request):
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json=_envelope([]))

        api = _client(FakeBackend({("GET", "/api/available-rooms"): slow}))
        controller = AbortController()

        task = asyncio.ensure_future(api.get_available_rooms(
            controller.signal, "2026-03-16T10:00:00Z", 30, "UTC", 2
        ))
        await asyncio.wait_for(started.wait(), timeout=1)
        controller.abort()
        res = await asyncio.wait_for(task, timeout=1)

        assert res.status == "ignore"

    async def test_abort_wins_over_finished_response(self):
        controller = AbortController()

        def answer_then_abort(request):
            controller.abort()
            return httpx.Response(200, json=_envelope([{"email": "oak@r"}]))

        api = _client(FakeBackend({("GET", "/api/available-rooms"): answer_then_abort}))

        res = await api.get_available_rooms(controller.signal, "2026-03-16T10:00:00Z", 30, "UTC", 2)

        assert res.status == "ignore"
        assert res.data is None

    async def test_already_aborted_signal_sends_nothing(self):
        backend = FakeBackend({("GET", "/api/available-rooms"): lambda r: httpx.Response(200, json=_envelope([]))})
        api = _client(backend)
        controller = AbortController()
        controller.abort()

        res = await api.get_available_rooms(controller.signal, "2026-03-16T10:00:00Z", 30, "UTC", 2)

        assert res.status == "ignore"
        assert backend.calls == []

    async def test_query_parameters(self):
        seen = {}

        def capture(request):
            seen.update(request.url.params)
            return httpx.Response(200, json=_envelope([]))

        api = _client(FakeBackend({("GET", "/api/available-rooms"): capture}))
        await api.get_available_rooms(
            AbortController().signal, "2026-03-16T10:00:00+05:30", 30, "Asia/Kolkata", 4, floor="F2"
        )

        assert seen == {
            "startTime": "2026-03-16T10:00:00+05:30",
            "duration": "30",
            "timeZone": "Asia/Kolkata",
            "seats": "4",
            "floor": "F2",
        }


# ── Session / OAuth helpers ────────────────────────────────────────


class TestSessionHelpers:
    async def test_validate_session(self):
        ok = _client(FakeBackend({("GET", "/auth/session/validate"): lambda r: httpx.Response(200, json=_envelope(True))}))
        assert await ok.validate_session() is True

        expired = _client(FakeBackend({
            ("GET", "/auth/session/validate"): lambda r: httpx.Response(401, json=UNAUTHORIZED),
            ("GET", "/auth/token/refresh"): lambda r: httpx.Response(401, json=UNAUTHORIZED),
            ("POST", "/auth/logout"): lambda r: httpx.Response(200, json=_envelope(True)),
        }))
        assert await expired.validate_session() is False

    async def test_login_opens_consent_url(self):
        opened = []
        backend = FakeBackend({
            ("GET", "/auth/oauth2/url"): lambda r: httpx.Response(200, json=_envelope("https://consent.test")),
        })
        api = _client(backend, open_url=opened.append)

        res = await api.login()

        assert res.status == "success"
        assert opened == ["https://consent.test"]

    async def test_chrome_flow(self):
        sent = []

        async def bridge(message):
            sent.append(message)
            return {"success": True, "code": "abc"}

        backend = FakeBackend({
            ("GET", "/auth/oauth2/url"): lambda r: httpx.Response(200, json=_envelope("https://consent.test")),
            ("POST", "/auth/oauth2/callback"): lambda r: httpx.Response(200, json=_envelope(True, "Signed in")),
        })
        api = _client(backend, message_bridge=bridge)

        res = await api.login_chrome()

        assert res.status == "success"
        assert sent == [{"type": "startAuthFlow", "redirectUrl": "https://consent.test"}]

    async def test_chrome_flow_rejected(self):
        async def bridge(message):
            return {"success": False, "error": "User closed the window"}

        backend = FakeBackend({
            ("GET", "/auth/oauth2/url"): lambda r: httpx.Response(200, json=_envelope("https://consent.test")),
        })
        api = _client(backend, message_bridge=bridge)

        res = await api.login_chrome()

        assert res.status == "error"
        assert res.message == "User closed the window"
