"""In-memory calendar provider used outside production.

Serves a fixed set of rooms and keeps events in a process-local table so
the booking flow can be exercised without a Google Workspace tenant.
Everything is forgotten on restart.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from quickmeet.models.event import ConferenceRoom
from quickmeet.timeutils import parse_datetime

from .base import CalendarProvider, TimeSlot

logger = logging.getLogger(__name__)

RESOURCE_DOMAIN = "resource.calendar.google.com"

DEFAULT_ROOMS: tuple[dict, ...] = (
    {"id": "room-huddle", "name": "Huddle", "seats": 2, "floor": "F1"},
    {"id": "room-cedar", "name": "Cedar", "seats": 4, "floor": "F1"},
    {"id": "room-maple", "name": "Maple", "seats": 6, "floor": "F2"},
    {"id": "room-oak", "name": "Oak", "seats": 8, "floor": "F2"},
    {"id": "room-summit", "name": "Summit", "seats": 12, "floor": "F3"},
    {"id": "room-atrium", "name": "Atrium", "seats": 20, "floor": "F3"},
)


def _event_window(event: dict) -> tuple[datetime, datetime]:
    start, end = event["start"]["dateTime"], event["end"]["dateTime"]
    return parse_datetime(start), parse_datetime(end)


class MockCalendarProvider(CalendarProvider):
    """CalendarProvider that never leaves the process."""

    def __init__(self, rooms: Optional[Iterable[dict]] = None) -> None:
        self._rooms = [dict(r) for r in (rooms if rooms is not None else DEFAULT_ROOMS)]
        self._events: dict[str, dict] = {}

    @staticmethod
    def room_email(room_id: str) -> str:
        return f"{room_id}@{RESOURCE_DOMAIN}"

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def list_rooms(self, client: Any, domain: str) -> list[ConferenceRoom]:
        return [
            ConferenceRoom(
                email=self.room_email(r["id"]),
                name=r["name"],
                seats=r["seats"],
                floor=r.get("floor"),
                id=r["id"],
                domain=domain,
            )
            for r in self._rooms
        ]

    async def list_events(
        self,
        client: Any,
        start: str,
        end: str,
        time_zone: str,
    ) -> list[dict]:
        window_start, window_end = parse_datetime(start), parse_datetime(end)
        events = [
            e for e in self._events.values()
            if TimeSlot(*_event_window(e)).overlaps(window_start, window_end)
        ]
        events.sort(key=lambda e: _event_window(e)[0])
        return [dict(e) for e in events]

    async def get_event(self, client: Any, event_id: str) -> Optional[dict]:
        event = self._events.get(event_id)
        return dict(event) if event else None

    async def query_free_busy(
        self,
        client: Any,
        calendar_ids: list[str],
        start: str,
        end: str,
        time_zone: str,
    ) -> dict[str, list[TimeSlot]]:
        window_start, window_end = parse_datetime(start), parse_datetime(end)
        busy: dict[str, list[TimeSlot]] = {cid: [] for cid in calendar_ids}

        for event in self._events.values():
            slot = TimeSlot(*_event_window(event))
            if not slot.overlaps(window_start, window_end):
                continue
            for attendee in event.get("attendees", []):
                email = attendee.get("email")
                if email in busy and attendee.get("responseStatus") != "declined":
                    busy[email].append(slot)

        for slots in busy.values():
            slots.sort(key=lambda s: s.start)
        return busy

    async def create_event(
        self, client: Any, body: dict, create_conference: bool = False
    ) -> dict:
        event_id = uuid.uuid4().hex
        event = {
            **body,
            "id": event_id,
            "status": "confirmed",
            "created": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "organizer": {"email": "me@mock", "self": True},
            "attendees": [
                {**a, "responseStatus": "accepted" if a.get("resource") else "needsAction"}
                for a in body.get("attendees", [])
            ],
        }
        if create_conference:
            event["hangoutLink"] = self._meet_link()

        self._events[event_id] = event
        logger.info("Mock event %s created", event_id)
        return dict(event)

    async def update_event(
        self, client: Any, event_id: str, body: dict, create_conference: bool = False
    ) -> dict:
        event = self._events.get(event_id)
        if event is None:
            raise KeyError(event_id)

        event.update(body)
        if "attendees" in body:
            event["attendees"] = [
                {**a, "responseStatus": "accepted" if a.get("resource") else "needsAction"}
                for a in body["attendees"]
            ]
        if create_conference and not event.get("hangoutLink"):
            event["hangoutLink"] = self._meet_link()

        logger.info("Mock event %s updated", event_id)
        return dict(event)

    async def delete_event(self, client: Any, event_id: str) -> bool:
        removed = self._events.pop(event_id, None) is not None
        logger.info("Mock event %s deleted=%s", event_id, removed)
        return removed

    @staticmethod
    def _meet_link() -> str:
        token = uuid.uuid4().hex
        return f"https://meet.google.com/{token[:3]}-{token[3:7]}-{token[7:10]}"

