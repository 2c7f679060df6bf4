"""Pydantic models for rooms and events as returned to the client."""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ConferenceRoom(BaseModel):
    """A bookable room resource. Read-only; owned by the Workspace directory."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str
    name: str
    seats: int = 0
    floor: Optional[str] = None
    id: Optional[str] = None
    domain: Optional[str] = None


class EventResponse(BaseModel):
    """A booked event, flattened with the room it occupies."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: Optional[str] = None
    summary: Optional[str] = None
    room: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    meet: Optional[str] = None
    floor: Optional[str] = None
    room_email: Optional[str] = None
    room_id: Optional[str] = None
    seats: Optional[int] = None
    attendees: Optional[list[str]] = None
    created_at: Optional[int] = None  # epoch millis
    is_editable: Optional[bool] = None


class DeleteResponse(BaseModel):
    deleted: bool
