"""End-to-end tests for the FastAPI routes using the mock providers."""

import os
import sys
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient
from googleapiclient.errors import HttpError

from quickmeet.app import create_app
from quickmeet.calendar_providers.mock import MockCalendarProvider
from quickmeet.config import Settings
from quickmeet.oauth import MockOAuthProvider

START = "2026-03-16T10:00:00+05:30"
OAK = MockCalendarProvider.room_email("room-oak")


def _make_client(calendar_provider=None, **kwargs):
    config = Settings(environment="development")
    app = create_app(
        config,
        calendar_provider or MockCalendarProvider(),
        MockOAuthProvider(config.oauth_redirect_url),
    )
    return TestClient(app, **kwargs)


def _sign_in(client):
    resp = client.post("/auth/oauth2/callback", json={"code": "mock-code"})
    assert resp.status_code == 200
    return resp


@pytest.fixture
def client():
    return _make_client()


@pytest.fixture
def signed_in(client):
    _sign_in(client)
    return client


def _book(client, **overrides):
    body = {
        "startTime": START,
        "duration": 30,
        "seats": 4,
        "timeZone": "Asia/Kolkata",
        "room": OAK,
        **overrides,
    }
    return client.post("/api/room", json=body)


# ── Health & session ───────────────────────────────────────────────


class TestSession:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_oauth_url(self, client):
        body = client.get("/auth/oauth2/url").json()
        assert body["status"] == "success"
        assert body["data"].endswith("?code=mock-code")

    def test_calendar_routes_require_sign_in(self, client):
        resp = client.get("/api/floors")
        assert resp.status_code == 401
        body = resp.json()
        assert body["status"] == "error"
        assert body["data"] == {"redirect": "/signin"}

    def test_sign_in_sets_session_cookies(self, client):
        resp = _sign_in(client)
        assert resp.json()["message"] == "Signed in"
        assert client.cookies.get("access_token").startswith("mock-access-")
        assert client.cookies.get("hd") == "example.com"

    def test_bad_code_is_rejected(self, client):
        resp = client.post("/auth/oauth2/callback", json={"code": ""})
        assert resp.status_code == 400
        assert resp.json()["status"] == "error"

    def test_validate_session(self, signed_in):
        resp = signed_in.get("/auth/session/validate")
        assert resp.status_code == 200
        assert resp.json()["data"] is True

    def test_refresh_token(self, signed_in):
        old_token = signed_in.cookies.get("access_token")

        resp = signed_in.get("/auth/token/refresh")

        assert resp.status_code == 200
        assert resp.json()["data"]["refreshed"] is True
        assert signed_in.cookies.get("access_token") != old_token

    def test_refresh_without_cookie(self, client):
        resp = client.get("/auth/token/refresh")
        assert resp.status_code == 401
        assert resp.json()["data"] == {"redirect": "/signin"}

    def test_logout_ends_session(self, signed_in):
        resp = signed_in.post("/auth/logout")
        assert resp.status_code == 200
        assert signed_in.get("/api/floors").status_code == 401


# ── Room queries ───────────────────────────────────────────────────


class TestRoomQueries:
    def test_highest_seat_count(self, signed_in):
        body = signed_in.get("/api/highest-seat-count").json()
        assert body == {"status": "success", "message": None, "data": 20}

    def test_floors(self, signed_in):
        assert signed_in.get("/api/floors").json()["data"] == ["F1", "F2", "F3"]

    def test_available_rooms(self, signed_in):
        resp = signed_in.get(
            "/api/available-rooms",
            params={"startTime": START, "duration": 30, "timeZone": "Asia/Kolkata", "seats": 8},
        )
        assert resp.status_code == 200
        rooms = resp.json()["data"]
        assert [r["name"] for r in rooms] == ["Oak", "Summit", "Atrium"]
        assert rooms[0]["email"] == OAK

    def test_available_rooms_on_floor(self, signed_in):
        resp = signed_in.get(
            "/api/available-rooms",
            params={"startTime": START, "duration": 30, "timeZone": "UTC", "seats": 1, "floor": "F1"},
        )
        assert [r["floor"] for r in resp.json()["data"]] == ["F1", "F1"]

    def test_invalid_duration(self, signed_in):
        resp = signed_in.get(
            "/api/available-rooms",
            params={"startTime": START, "duration": 0, "timeZone": "UTC"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"].startswith("Invalid duration")

    def test_short_fraction_start_time(self, signed_in):
        resp = signed_in.get(
            "/api/available-rooms",
            params={"startTime": "2026-03-16T10:00:00.5+05:30", "duration": 30, "timeZone": "UTC", "seats": 8},
        )
        assert resp.status_code == 200
        assert [r["name"] for r in resp.json()["data"]] == ["Oak", "Summit", "Atrium"]

    def test_invalid_start_time(self, signed_in):
        resp = signed_in.get(
            "/api/available-rooms",
            params={"startTime": "soon", "duration": 30, "timeZone": "UTC"},
        )
        assert resp.status_code == 400
        assert resp.json()["status"] == "error"


# ── Booking lifecycle ──────────────────────────────────────────────


class TestBooking:
    def test_book_room(self, signed_in):
        resp = _book(signed_in, createConference=True)

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Room has been booked"
        assert body["data"]["room"] == "Oak"
        assert body["data"]["summary"] == "Quick Meeting"
        assert body["data"]["end"] == "2026-03-16T05:00:00.000Z"
        assert body["data"]["meet"].startswith("https://meet.google.com/")

    def test_booked_room_disappears_from_availability(self, signed_in):
        _book(signed_in)

        rooms = signed_in.get(
            "/api/available-rooms",
            params={"startTime": START, "duration": 30, "timeZone": "Asia/Kolkata", "seats": 8},
        ).json()["data"]

        assert "Oak" not in [r["name"] for r in rooms]

    def test_double_booking_conflicts(self, signed_in):
        _book(signed_in)
        resp = _book(signed_in)
        assert resp.status_code == 409
        assert resp.json()["status"] == "error"

    def test_missing_room_field(self, signed_in):
        resp = signed_in.post(
            "/api/room",
            json={"startTime": START, "duration": 30, "timeZone": "UTC"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"].startswith("Invalid room")

    def test_update_and_list(self, signed_in):
        event_id = _book(signed_in).json()["data"]["eventId"]

        resp = signed_in.put(
            "/api/room",
            json={
                "eventId": event_id,
                "startTime": START,
                "duration": 60,
                "timeZone": "Asia/Kolkata",
                "room": OAK,
                "title": "Planning",
            },
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Event has been updated!"

        events = signed_in.get(
            "/api/rooms",
            params={
                "startTime": "2026-03-16T00:00:00Z",
                "endTime": "2026-03-17T00:00:00Z",
                "timeZone": "UTC",
            },
        ).json()["data"]
        assert len(events) == 1
        assert events[0]["summary"] == "Planning"
        assert events[0]["end"] == "2026-03-16T05:30:00.000Z"
        assert events[0]["isEditable"] is True

    def test_delete(self, signed_in):
        event_id = _book(signed_in).json()["data"]["eventId"]

        resp = signed_in.delete("/api/room", params={"id": event_id})
        assert resp.status_code == 200
        assert resp.json()["message"] == "Event has been deleted"
        assert resp.json()["data"] == {"deleted": True}

        assert signed_in.delete("/api/room", params={"id": event_id}).status_code == 404


# ── Upstream failures ──────────────────────────────────────────────


class TestErrors:
    def test_google_error_is_wrapped(self):
        provider = MockCalendarProvider()
        provider.list_floors = MagicMock(
            side_effect=HttpError(MagicMock(status=403, reason="Forbidden"), b"")
        )
        client = _make_client(provider)
        _sign_in(client)

        resp = client.get("/api/floors")

        assert resp.status_code == 403
        assert resp.json()["status"] == "error"
        assert resp.json()["data"] == {"redirect": "/signin"}

    def test_unexpected_error_is_wrapped(self):
        provider = MockCalendarProvider()
        provider.list_floors = MagicMock(side_effect=RuntimeError("boom"))
        client = _make_client(provider, raise_server_exceptions=False)
        _sign_in(client)

        resp = client.get("/api/floors")

        assert resp.status_code == 500
        assert resp.json() == {"status": "error", "message": "Something went wrong", "data": None}
