"""Booking form state machine.

Drives the "book a room now" form: fills the dropdowns, re-queries free
rooms whenever the time, duration or seat count changes, and submits the
booking. Rendering is left to whoever holds the view; it only exposes
state.

States::

    loading ──mount()──▶ idle ⇄ searching
                          │
                          └──book()──▶ booking ──▶ idle
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Optional, Protocol

from dateutil import tz

from quickmeet.client.api import AbortController, ApiClient, Navigate, _maybe_await
from quickmeet.client.options import (
    DropdownOption,
    RoomOption,
    create_dropdown_options,
    populate_duration_options,
    populate_room_capacity,
)
from quickmeet.client.preferences import Preferences
from quickmeet.models import ApiResponse, BookRoomRequest, ConferenceRoom
from quickmeet.timeutils import (
    convert_to_rfc3339,
    get_time_zone_string,
    populate_time_options,
)

log = logging.getLogger("quickmeet.client.booking_view")

NO_ROOMS_PLACEHOLDER = "No rooms are available"
SELECT_ROOM_PLACEHOLDER = "Select your room"


class ViewState(str, enum.Enum):
    LOADING = "loading"
    IDLE = "idle"
    SEARCHING = "searching"
    BOOKING = "booking"


@dataclass
class FormData:
    start_time: str = ""  # "H:MM AM/PM"
    duration: int = 30
    seats: int = 1
    room: Optional[str] = None  # room email
    title: Optional[str] = None
    attendees: list[str] = field(default_factory=list)
    conference: bool = False


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Notifier that only writes to the log."""

    def success(self, message: str) -> None:
        log.info(message)

    def error(self, message: str) -> None:
        log.error(message)


async def render_error(
    res: ApiResponse, notifier: Notifier, navigate: Optional[Navigate] = None
) -> None:
    """Show an error envelope and follow its redirect hint, if any."""
    notifier.error(res.message or "Something went wrong")
    redirect = res.data.get("redirect") if isinstance(res.data, dict) else None
    if redirect and navigate is not None:
        await _maybe_await(navigate(redirect))


class BookingView:
    """State behind the room booking form."""

    SEARCH_FIELDS = ("start_time", "duration", "seats")
    INT_FIELDS = ("duration", "seats")

    def __init__(
        self,
        api: ApiClient,
        preferences: Optional[Preferences] = None,
        *,
        on_room_booked: Optional[Callable[[], Any]] = None,
        navigate: Optional[Navigate] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
        zone: Optional[tzinfo] = None,
        time_zone: Optional[str] = None,
    ) -> None:
        self._api = api
        self._preferences = preferences or Preferences()
        self._on_room_booked = on_room_booked
        self._navigate = navigate
        self._notifier = notifier or LoggingNotifier()
        self._zone = zone or tz.tzlocal()
        self._clock = clock or (lambda: datetime.now(self._zone))
        self._time_zone = time_zone or get_time_zone_string()
        self._abort_controller: Optional[AbortController] = None

        self.state = ViewState.LOADING
        self.page_loaded = False
        self.room_loading = False
        self.form = FormData(
            duration=self._preferences.duration or FormData.duration,
            seats=self._preferences.seats or FormData.seats,
        )

        self.time_options: list[DropdownOption] = []
        self.duration_options: list[DropdownOption] = []
        self.capacity_options: list[DropdownOption] = []
        self.room_options: list[RoomOption] = []

    @property
    def room_placeholder(self) -> str:
        return NO_ROOMS_PLACEHOLDER if not self.room_options else SELECT_ROOM_PLACEHOLDER

    @property
    def can_book(self) -> bool:
        return bool(self.form.room) and not self.room_loading and self.state == ViewState.IDLE

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self) -> None:
        """Fill the dropdowns, seed the form and run the first search."""
        self.state = ViewState.LOADING
        try:
            await self._initialize_dropdowns()
        finally:
            self.page_loaded = True
            self.state = ViewState.IDLE

        if self.form.start_time:
            await self.refresh_available_rooms()

    async def unmount(self) -> None:
        if self._abort_controller is not None:
            self._abort_controller.abort()

    async def _initialize_dropdowns(self) -> None:
        res = await self._api.get_max_seat_count()
        if res.status == "error":
            await render_error(res, self._notifier, self._navigate)
            return

        capacities = populate_room_capacity(int(res.data or 0))
        durations = populate_duration_options()
        times = populate_time_options(self._clock())

        self.time_options = create_dropdown_options(times)
        self.duration_options = create_dropdown_options(durations, "time")
        self.capacity_options = create_dropdown_options(capacities)

        self.form.start_time = times[0] if times else ""
        self.form.seats = self._preferences.seats or int(capacities[0])
        self.form.duration = self._preferences.duration or int(durations[0])

    # ------------------------------------------------------------------
    # Form
    # ------------------------------------------------------------------

    async def set_field(self, name: str, value: Any) -> None:
        """Update one form field; search again if it changes the query."""
        if name not in {f.name for f in fields(FormData)}:
            raise ValueError(f"Unknown form field {name!r}")
        if name in self.INT_FIELDS:
            value = int(value)

        setattr(self.form, name, value)

        if name in self.SEARCH_FIELDS and self.page_loaded and self.form.start_time:
            await self.refresh_available_rooms()

    def _formatted_start_time(self) -> str:
        today = self._clock().astimezone(timezone.utc).date().isoformat()
        return convert_to_rfc3339(today, self.form.start_time, zone=self._zone)

    async def refresh_available_rooms(self) -> None:
        """Query free rooms; any search still in flight is aborted first."""
        if self._abort_controller is not None:
            self._abort_controller.abort()
        controller = AbortController()
        self._abort_controller = controller

        self.room_loading = True
        if self.state == ViewState.IDLE:
            self.state = ViewState.SEARCHING

        res = await self._api.get_available_rooms(
            controller.signal,
            self._formatted_start_time(),
            self.form.duration,
            self._time_zone,
            self.form.seats,
            self._preferences.floor,
        )

        if res.status == "ignore" or controller is not self._abort_controller:
            return

        self.room_loading = False
        if self.state == ViewState.SEARCHING:
            self.state = ViewState.IDLE

        if res.status == "error":
            await render_error(res, self._notifier, self._navigate)
            return

        rooms = [ConferenceRoom.model_validate(r) for r in (res.data or [])]
        self.form.room = rooms[0].email if rooms else None
        self.room_options = [
            RoomOption(value=r.email, text=r.name, seats=r.seats, floor=r.floor)
            for r in rooms
        ]

    async def book(self) -> Optional[ApiResponse]:
        """Book the selected room.

        Does nothing when no room is selected or a booking is already in
        flight.
        """
        room = self.form.room
        if not room or self.state == ViewState.BOOKING:
            return None

        self.state = ViewState.BOOKING
        payload = BookRoomRequest(
            start_time=self._formatted_start_time(),
            duration=self.form.duration,
            seats=self.form.seats,
            floor=self._preferences.floor or None,
            time_zone=self._time_zone,
            create_conference=self.form.conference,
            title=self.form.title or self._preferences.title,
            room=room,
            attendees=list(self.form.attendees),
        )

        res = await self._api.create_event(payload)
        self.state = ViewState.IDLE

        if res.status != "success":
            await self.refresh_available_rooms()
            await render_error(res, self._notifier, self._navigate)
            return res

        room_name = res.data.get("room") if isinstance(res.data, dict) else None
        self._notifier.success(f"{room_name or 'Room'} has been booked!")
        log.info("Booked %s at %s", room, payload.start_time)

        self.form.room = None
        self.room_options = []
        if self._on_room_booked is not None:
            await _maybe_await(self._on_room_booked())
        return res
