"""Google Calendar provider implementation.

Acts on behalf of the signed-in user: every call receives the caller's
OAuth credentials and builds Calendar v3 / Admin Directory clients from
them. Room resources come from the Directory API
(``resources.calendars``); bookings are events on the caller's primary
calendar with the room invited as a resource attendee.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from functools import partial
from typing import Any, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from quickmeet.models.event import ConferenceRoom
from quickmeet.timeutils import parse_datetime

from .base import CalendarProvider, TimeSlot

logger = logging.getLogger(__name__)

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/admin.directory.resource.calendar.readonly",
]

CONFERENCE_ROOM_CATEGORY = "CONFERENCE_ROOM"


class GoogleCalendarProvider(CalendarProvider):
    """CalendarProvider backed by Google Calendar API v3 and Admin Directory."""

    def __init__(self, customer: str = "my_customer", calendar_id: str = "primary") -> None:
        self._customer = customer
        self._calendar_id = calendar_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    @staticmethod
    def _calendar_service(client: Any):
        return build("calendar", "v3", credentials=client, cache_discovery=False)

    @staticmethod
    def _directory_service(client: Any):
        return build("admin", "directory_v1", credentials=client, cache_discovery=False)

    @staticmethod
    def _to_room(item: dict, domain: str) -> ConferenceRoom:
        return ConferenceRoom(
            email=item.get("resourceEmail", ""),
            name=item.get("resourceName") or item.get("generatedResourceName", ""),
            seats=int(item.get("capacity") or 0),
            floor=item.get("floorName"),
            id=item.get("resourceId"),
            domain=domain,
        )

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def list_rooms(self, client: Any, domain: str) -> list[ConferenceRoom]:
        """Page through the domain's calendar resources, keeping rooms only."""
        resources = self._directory_service(client).resources().calendars()
        items: list[dict] = []

        request = resources.list(customer=self._customer)
        while request is not None:
            try:
                response = await self._run_in_executor(request.execute)
            except HttpError as exc:
                logger.error("Failed to list rooms for %s: %s", domain, exc)
                raise
            items.extend(response.get("items", []))
            request = resources.list_next(
                previous_request=request, previous_response=response
            )

        return [
            self._to_room(item, domain)
            for item in items
            if item.get("resourceCategory", CONFERENCE_ROOM_CATEGORY) == CONFERENCE_ROOM_CATEGORY
            and item.get("resourceEmail")
        ]

    async def list_events(
        self,
        client: Any,
        start: str,
        end: str,
        time_zone: str,
    ) -> list[dict]:
        events = self._calendar_service(client).events()
        items: list[dict] = []

        request = events.list(
            calendarId=self._calendar_id,
            timeMin=start,
            timeMax=end,
            timeZone=time_zone,
            singleEvents=True,
            orderBy="startTime",
        )
        while request is not None:
            response = await self._run_in_executor(request.execute)
            items.extend(response.get("items", []))
            request = events.list_next(
                previous_request=request, previous_response=response
            )

        return items

    async def get_event(self, client: Any, event_id: str) -> Optional[dict]:
        try:
            return await self._run_in_executor(
                self._calendar_service(client)
                .events()
                .get(calendarId=self._calendar_id, eventId=event_id)
                .execute
            )
        except HttpError as exc:
            if getattr(exc.resp, "status", None) in (404, 410):
                return None
            raise

    async def query_free_busy(
        self,
        client: Any,
        calendar_ids: list[str],
        start: str,
        end: str,
        time_zone: str,
    ) -> dict[str, list[TimeSlot]]:
        """Query the freebusy API for many calendars at once."""
        if not calendar_ids:
            return {}

        body = {
            "timeMin": start,
            "timeMax": end,
            "timeZone": time_zone,
            "items": [{"id": cid} for cid in calendar_ids],
        }

        response = await self._run_in_executor(
            self._calendar_service(client).freebusy().query(body=body).execute
        )

        result: dict[str, list[TimeSlot]] = {}
        for cid, data in response.get("calendars", {}).items():
            if data.get("errors"):
                logger.warning("Freebusy errors for %s: %s", cid, data["errors"])
            result[cid] = [
                TimeSlot(start=parse_datetime(b["start"]), end=parse_datetime(b["end"]))
                for b in data.get("busy", [])
            ]
        return result

    async def create_event(
        self, client: Any, body: dict, create_conference: bool = False
    ) -> dict:
        """Insert an event, optionally requesting a Meet conference."""
        body = dict(body)
        params: dict[str, Any] = {}
        if create_conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = 1

        result = await self._run_in_executor(
            self._calendar_service(client)
            .events()
            .insert(calendarId=self._calendar_id, body=body, sendUpdates="all", **params)
            .execute
        )

        logger.info("Created event %s on calendar %s", result.get("id"), self._calendar_id)
        return result

    async def update_event(
        self, client: Any, event_id: str, body: dict, create_conference: bool = False
    ) -> dict:
        body = dict(body)
        params: dict[str, Any] = {}
        if create_conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = 1

        result = await self._run_in_executor(
            self._calendar_service(client)
            .events()
            .patch(
                calendarId=self._calendar_id,
                eventId=event_id,
                body=body,
                sendUpdates="all",
                **params,
            )
            .execute
        )

        logger.info("Updated event %s on calendar %s", event_id, self._calendar_id)
        return result

    async def delete_event(self, client: Any, event_id: str) -> bool:
        """Delete an event from the caller's calendar."""
        await self._run_in_executor(
            self._calendar_service(client)
            .events()
            .delete(calendarId=self._calendar_id, eventId=event_id, sendUpdates="all")
            .execute
        )
        logger.info("Deleted event %s on calendar %s", event_id, self._calendar_id)
        return True
