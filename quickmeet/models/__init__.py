"""Data models shared by the backend and the booking client."""

from .booking import BookRoomRequest, OAuthCallbackRequest, UpdateRoomRequest
from .envelope import ApiResponse, StatusType, create_reply, create_response
from .event import ConferenceRoom, DeleteResponse, EventResponse

__all__ = [
    "ApiResponse",
    "BookRoomRequest",
    "ConferenceRoom",
    "DeleteResponse",
    "EventResponse",
    "OAuthCallbackRequest",
    "StatusType",
    "UpdateRoomRequest",
    "create_reply",
    "create_response",
]
