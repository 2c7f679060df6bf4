"""Abstract base class for calendar providers.

Defines the capability set the booking backend needs from a calendar
backend: room directory lookups, event CRUD on the caller's primary
calendar and free/busy queries. The real Google implementation and the
development mock both implement this ABC.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from quickmeet.models.event import ConferenceRoom


@dataclass
class TimeSlot:
    """A busy or free window on a calendar."""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


class CalendarProvider(ABC):
    """Abstract calendar backend.

    ``client`` is the caller's OAuth credentials object; providers that do
    not talk to Google ignore it. Event payloads use the Google Calendar v3
    resource shape.
    """

    @abstractmethod
    async def list_rooms(self, client: Any, domain: str) -> list[ConferenceRoom]:
        """Return every conference room resource of the Workspace domain."""

    @abstractmethod
    async def list_events(
        self,
        client: Any,
        start: str,
        end: str,
        time_zone: str,
    ) -> list[dict]:
        """Return events on the caller's primary calendar overlapping the window."""

    @abstractmethod
    async def get_event(self, client: Any, event_id: str) -> Optional[dict]:
        """Return a single event, or None if it does not exist."""

    @abstractmethod
    async def query_free_busy(
        self,
        client: Any,
        calendar_ids: list[str],
        start: str,
        end: str,
        time_zone: str,
    ) -> dict[str, list[TimeSlot]]:
        """Return busy intervals per calendar id within ``[start, end)``."""

    @abstractmethod
    async def create_event(
        self, client: Any, body: dict, create_conference: bool = False
    ) -> dict:
        """Insert an event on the caller's primary calendar."""

    @abstractmethod
    async def update_event(
        self, client: Any, event_id: str, body: dict, create_conference: bool = False
    ) -> dict:
        """Patch an existing event and return the updated resource."""

    @abstractmethod
    async def delete_event(self, client: Any, event_id: str) -> bool:
        """Delete an event. Returns True once it is gone."""

    # ------------------------------------------------------------------
    # Derived capabilities
    # ------------------------------------------------------------------

    async def list_floors(self, client: Any, domain: str) -> list[str]:
        """Return the distinct, sorted floor names of the domain's rooms."""
        rooms = await self.list_rooms(client, domain)
        return sorted({room.floor for room in rooms if room.floor})

    async def get_highest_seat_count(self, client: Any, domain: str) -> int:
        rooms = await self.list_rooms(client, domain)
        return max((room.seats for room in rooms), default=0)
