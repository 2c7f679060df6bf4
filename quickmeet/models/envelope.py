"""The uniform ``{status, message, data}`` envelope used on every API call."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel

StatusType = Literal["success", "error", "ignore"]


class ApiResponse(BaseModel):
    """Response wrapper crossing the HTTP boundary.

    ``ignore`` is only ever produced client-side, for a request the caller
    aborted itself.
    """

    status: StatusType = "success"
    message: Optional[str] = None
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, mode="json")
    if isinstance(data, (list, tuple)):
        return [_dump(item) for item in data]
    return data


def create_response(data: Any = None, message: Optional[str] = None) -> ApiResponse:
    """Wrap a successful result, serialising models with their wire names."""
    return ApiResponse(status="success", message=message, data=_dump(data))


def create_reply(
    status: StatusType = "success", message: Optional[str] = None, data: Any = None
) -> ApiResponse:
    return ApiResponse(status=status, message=message, data=_dump(data))
