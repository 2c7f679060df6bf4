"""Pydantic models for booking requests."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BookRoomRequest(BaseModel):
    """A room booking as submitted by the client.

    ``start_time`` is a zone-qualified RFC 3339 timestamp; the end time is
    derived server-side from ``duration`` and never stored.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    start_time: str
    duration: int = Field(gt=0)  # minutes
    seats: int = Field(default=1, ge=1)
    floor: Optional[str] = None
    time_zone: str
    create_conference: bool = False
    title: Optional[str] = None
    room: str  # room resource email
    attendees: list[str] = Field(default_factory=list)


class UpdateRoomRequest(BookRoomRequest):
    """A booking change for an existing event."""

    event_id: str


class OAuthCallbackRequest(BaseModel):
    code: str
