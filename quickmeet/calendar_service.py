"""Room booking operations on top of a CalendarProvider.

Stateless: every method receives the caller's OAuth client and Workspace
domain, asks the provider for what it needs and shapes the result into the
wire models. Conflicts between concurrent bookings are ultimately settled
by the calendar backend; the busy check here only turns the common case
into a clean 409.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException, status

from quickmeet.calendar_providers.base import CalendarProvider, TimeSlot
from quickmeet.models.event import ConferenceRoom, DeleteResponse, EventResponse
from quickmeet.timeutils import parse_datetime

log = logging.getLogger("quickmeet.calendar_service")

DEFAULT_TITLE = "Quick Meeting"


def _to_millis(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    return int(parse_datetime(value).timestamp() * 1000)


def extract_meet_url(event: dict[str, Any]) -> Optional[str]:
    """Find the Google Meet link of an event, if it has one."""
    link = event.get("hangoutLink")
    if isinstance(link, str) and link.startswith("http"):
        return link

    conf = event.get("conferenceData")
    if isinstance(conf, dict):
        for ep in conf.get("entryPoints") or []:
            if not isinstance(ep, dict):
                continue
            uri = ep.get("uri")
            if ep.get("entryPointType") == "video" and isinstance(uri, str):
                return uri

    return None


class CalendarService:
    """Booking logic shared by every calendar route."""

    def __init__(self, provider: CalendarProvider) -> None:
        self._provider = provider

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_events(
        self,
        client: Any,
        domain: str,
        start_time: str,
        end_time: str,
        time_zone: str,
    ) -> list[EventResponse]:
        """List the caller's events in the window that occupy a known room."""
        events = await self._provider.list_events(client, start_time, end_time, time_zone)
        rooms = await self._rooms_by_email(client, domain)

        results: list[EventResponse] = []
        for event in events:
            if event.get("status") == "cancelled":
                continue
            response = self._to_event_response(event, rooms)
            if response is not None:
                results.append(response)
        return results

    async def get_available_rooms(
        self,
        client: Any,
        domain: str,
        start_time: str,
        end_time: str,
        time_zone: str,
        seats: int,
        floor: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> list[ConferenceRoom]:
        """Rooms with enough seats on the floor that are free for the window.

        When ``event_id`` is given the event's own booking does not count as
        busy, so an existing meeting can be moved or resized in place.
        """
        rooms = await self._provider.list_rooms(client, domain)
        candidates = [
            r for r in rooms
            if r.seats >= seats and (not floor or r.floor == floor)
        ]
        if not candidates:
            return []

        busy = await self._provider.query_free_busy(
            client, [r.email for r in candidates], start_time, end_time, time_zone
        )
        ignored = await self._booked_slot(client, event_id) if event_id else None

        window_start, window_end = parse_datetime(start_time), parse_datetime(end_time)
        available = [
            room for room in candidates
            if not self._is_busy(busy.get(room.email, []), window_start, window_end, room.email, ignored)
        ]
        available.sort(key=lambda r: (r.seats, r.name))

        log.info(
            "Availability %s..%s seats>=%d floor=%s: %d/%d rooms free",
            start_time, end_time, seats, floor or "-", len(available), len(candidates),
        )
        return available

    async def get_highest_seat_capacity(self, client: Any, domain: str) -> int:
        return await self._provider.get_highest_seat_count(client, domain)

    async def list_floors(self, client: Any, domain: str) -> list[str]:
        return await self._provider.list_floors(client, domain)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_event(
        self,
        client: Any,
        domain: str,
        start_time: str,
        end_time: str,
        room_email: str,
        create_conference: bool = False,
        title: Optional[str] = None,
        attendees: Optional[list[str]] = None,
        time_zone: Optional[str] = None,
    ) -> EventResponse:
        rooms = await self._rooms_by_email(client, domain)
        room = self._require_room(rooms, room_email)

        await self._ensure_room_free(client, room, start_time, end_time, time_zone)

        body = self._build_event_body(start_time, end_time, time_zone, room, title, attendees)
        event = await self._provider.create_event(client, body, create_conference)

        log.info("Booked %s (%s) %s..%s", room.name, room.email, start_time, end_time)
        return self._to_event_response(event, rooms) or EventResponse(event_id=event.get("id"))

    async def update_event(
        self,
        client: Any,
        domain: str,
        event_id: str,
        start_time: str,
        end_time: str,
        create_conference: bool = False,
        title: Optional[str] = None,
        attendees: Optional[list[str]] = None,
        room_email: Optional[str] = None,
        time_zone: Optional[str] = None,
    ) -> EventResponse:
        existing = await self._provider.get_event(client, event_id)
        if existing is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
        if not (existing.get("organizer") or {}).get("self"):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the organizer can edit this event",
            )

        rooms = await self._rooms_by_email(client, domain)
        if not room_email:
            room_email = self._room_attendee_email(existing, rooms)
        room = self._require_room(rooms, room_email or "")

        await self._ensure_room_free(
            client, room, start_time, end_time, time_zone, exclude_event_id=event_id
        )

        body = self._build_event_body(
            start_time,
            end_time,
            time_zone,
            room,
            title or existing.get("summary"),
            attendees,
        )
        event = await self._provider.update_event(client, event_id, body, create_conference)

        log.info("Updated event %s -> %s %s..%s", event_id, room.name, start_time, end_time)
        return self._to_event_response(event, rooms) or EventResponse(event_id=event_id)

    async def delete_event(self, client: Any, event_id: str) -> DeleteResponse:
        deleted = await self._provider.delete_event(client, event_id)
        if not deleted:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
        log.info("Deleted event %s", event_id)
        return DeleteResponse(deleted=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _rooms_by_email(self, client: Any, domain: str) -> dict[str, ConferenceRoom]:
        rooms = await self._provider.list_rooms(client, domain)
        return {room.email: room for room in rooms}

    @staticmethod
    def _require_room(rooms: dict[str, ConferenceRoom], room_email: str) -> ConferenceRoom:
        room = rooms.get(room_email)
        if room is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
        return room

    async def _booked_slot(self, client: Any, event_id: str) -> Optional[tuple[str, TimeSlot]]:
        """Return ``(room_email, window)`` of an existing booking."""
        event = await self._provider.get_event(client, event_id)
        if not event:
            return None

        room_email = next(
            (a.get("email") for a in event.get("attendees", []) if a.get("resource")),
            None,
        )
        start = (event.get("start") or {}).get("dateTime")
        end = (event.get("end") or {}).get("dateTime")
        if not room_email or not start or not end:
            return None
        return room_email, TimeSlot(start=parse_datetime(start), end=parse_datetime(end))

    @staticmethod
    def _is_busy(
        slots: list[TimeSlot],
        start: datetime,
        end: datetime,
        room_email: str,
        ignored: Optional[tuple[str, TimeSlot]] = None,
    ) -> bool:
        for slot in slots:
            if ignored and ignored[0] == room_email:
                own = ignored[1]
                if slot.start >= own.start and slot.end <= own.end:
                    continue
            if slot.overlaps(start, end):
                return True
        return False

    async def _ensure_room_free(
        self,
        client: Any,
        room: ConferenceRoom,
        start_time: str,
        end_time: str,
        time_zone: Optional[str],
        exclude_event_id: Optional[str] = None,
    ) -> None:
        busy = await self._provider.query_free_busy(
            client, [room.email], start_time, end_time, time_zone or "UTC"
        )
        ignored = await self._booked_slot(client, exclude_event_id) if exclude_event_id else None
        if self._is_busy(
            busy.get(room.email, []),
            parse_datetime(start_time),
            parse_datetime(end_time),
            room.email,
            ignored,
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{room.name} is already booked for that time",
            )

    @staticmethod
    def _build_event_body(
        start_time: str,
        end_time: str,
        time_zone: Optional[str],
        room: ConferenceRoom,
        title: Optional[str],
        attendees: Optional[list[str]],
    ) -> dict[str, Any]:
        start: dict[str, str] = {"dateTime": start_time}
        end: dict[str, str] = {"dateTime": end_time}
        if time_zone:
            start["timeZone"] = time_zone
            end["timeZone"] = time_zone

        guests: list[dict[str, Any]] = [
            {"email": room.email, "displayName": room.name, "resource": True}
        ]
        seen = {room.email}
        for email in attendees or []:
            email = email.strip()
            if email and email not in seen:
                seen.add(email)
                guests.append({"email": email})

        return {
            "summary": title or DEFAULT_TITLE,
            "location": room.name,
            "start": start,
            "end": end,
            "attendees": guests,
        }

    @staticmethod
    def _room_attendee_email(event: dict, rooms: dict[str, ConferenceRoom]) -> Optional[str]:
        for attendee in event.get("attendees", []):
            email = attendee.get("email")
            if attendee.get("resource") or email in rooms:
                return email
        return None

    def _to_event_response(
        self, event: dict, rooms: dict[str, ConferenceRoom]
    ) -> Optional[EventResponse]:
        """Flatten a calendar event with its room, or None if it has no room."""
        room_email = self._room_attendee_email(event, rooms)
        if not room_email:
            return None

        room = rooms.get(room_email)
        room_attendee = next(
            (a for a in event.get("attendees", []) if a.get("email") == room_email), {}
        )
        guests = [
            a["email"]
            for a in event.get("attendees", [])
            if a.get("email") and not a.get("resource") and a.get("email") not in rooms
        ]

        return EventResponse(
            event_id=event.get("id"),
            summary=event.get("summary"),
            room=room.name if room else room_attendee.get("displayName"),
            start=(event.get("start") or {}).get("dateTime"),
            end=(event.get("end") or {}).get("dateTime"),
            meet=extract_meet_url(event),
            floor=room.floor if room else None,
            room_email=room_email,
            room_id=room.id if room else None,
            seats=room.seats if room else None,
            attendees=guests,
            created_at=_to_millis(event.get("created")),
            is_editable=bool((event.get("organizer") or {}).get("self")),
        )
