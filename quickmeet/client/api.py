"""HTTP client for the booking backend.

``ApiClient`` is the single gateway the booking view talks to. It carries
the session cookies, retries a request once after refreshing an expired
access token, and turns every outcome into an ``ApiResponse`` envelope:
public methods never raise.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import webbrowser
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from quickmeet.models import ApiResponse, BookRoomRequest, create_reply

log = logging.getLogger("quickmeet.client.api")

SIGN_IN_ROUTE = "/signin"

Navigate = Callable[[str], Any]
MessageBridge = Callable[[dict], Awaitable[dict]]


class RequestAborted(Exception):
    """The caller aborted the request through its AbortSignal."""


class AbortSignal:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class AbortController:
    """Cancels whatever request was started with its ``signal``."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self) -> None:
        self.signal._event.set()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ApiClient:
    """Authenticated gateway to the booking backend.

    Typical use::

        api = ApiClient(settings.backend_endpoint, navigate=router.go)
        res = await api.get_floors()
        if res.status == "success":
            ...
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        app_environment: str = "web",
        mock_calendar: bool = False,
        navigate: Optional[Navigate] = None,
        message_bridge: Optional[MessageBridge] = None,
        open_url: Callable[[str], Any] = webbrowser.open,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._navigate = navigate
        self._message_bridge = message_bridge
        self._open_url = open_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=self._headers(app_environment, mock_calendar),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs: Any) -> "ApiClient":
        return cls(
            settings.backend_endpoint,
            timeout=settings.client_timeout,
            app_environment=settings.app_environment,
            mock_calendar=settings.use_mock_google_api,
            **kwargs,
        )

    @staticmethod
    def _headers(app_environment: str, mock_calendar: bool) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "x-mock-api": str(mock_calendar).lower(),
            "x-app-environment": app_environment,  # "chrome" or "web"
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _dispatch(
        self, method: str, path: str, signal: Optional[AbortSignal], **kwargs: Any
    ) -> httpx.Response:
        if signal is None:
            return await self._client.request(method, path, **kwargs)
        if signal.aborted:
            raise RequestAborted()

        request = asyncio.ensure_future(self._client.request(method, path, **kwargs))
        aborted = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait(
                {request, aborted}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            request.cancel()
            raise
        finally:
            aborted.cancel()

        # An abort wins even when the response is already in.
        if signal.aborted:
            if request not in done:
                request.cancel()
                await asyncio.wait({request})
            raise RequestAborted()

        return request.result()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        attempt: int = 0,
        signal: Optional[AbortSignal] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, refreshing the session once on a 401."""
        response = await self._dispatch(method, path, signal, **kwargs)

        if response.status_code == 401 and attempt == 0:
            renewed = await self.refresh_token()
            if not renewed:
                await self.logout()
                if self._navigate is not None:
                    await _maybe_await(self._navigate(SIGN_IN_ROUTE))
                response.raise_for_status()
            return await self._send(method, path, attempt=attempt + 1, signal=signal, **kwargs)

        response.raise_for_status()
        return response

    async def _call(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        try:
            response = await self._send(method, path, **kwargs)
            return ApiResponse.model_validate(response.json())
        except (httpx.HTTPError, RequestAborted, ValueError) as exc:
            return self.handle_error(exc)

    def handle_error(self, error: Exception) -> ApiResponse:
        if isinstance(error, RequestAborted):
            return create_reply("ignore", "Pending request aborted")

        log.error("API request failed: %s", error)

        if isinstance(error, httpx.HTTPStatusError):
            try:
                return ApiResponse.model_validate(error.response.json())
            except (ValueError, ValidationError):
                pass

        return create_reply("error", "Something went wrong")

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def validate_session(self) -> bool:
        try:
            await self._send("GET", "/auth/session/validate")
            return True
        except (httpx.HTTPError, RequestAborted):
            return False

    async def refresh_token(self) -> Any:
        """Renew the access token. Returns the payload, or None on failure."""
        try:
            res = await self._client.get("/auth/token/refresh")
            res.raise_for_status()
            return res.json().get("data")
        except (httpx.HTTPError, ValueError, AttributeError):
            return None

    async def logout(self) -> bool:
        try:
            res = await self._client.post("/auth/logout")
            res.raise_for_status()
            return True
        except httpx.HTTPError:
            return False

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def get_oauth_url(self) -> ApiResponse:
        return await self._call("GET", "/auth/oauth2/url")

    async def handle_oauth_callback(self, code: str) -> ApiResponse:
        res = await self._call("POST", "/auth/oauth2/callback", json={"code": code})
        if res.status != "success":
            return res
        return create_reply()

    async def login(self) -> ApiResponse:
        """Open the consent screen in the user's browser."""
        res = await self.get_oauth_url()
        if not res.data:
            log.error("Failed to retrieve oauth callback url")
            return create_reply("error", "Failed to retrieve oauth callback url")

        self._open_url(res.data)
        return create_reply("success", data=res.data)

    async def login_chrome(self) -> ApiResponse:
        res = await self.get_oauth_url()
        if res.data:
            return await self.handle_chrome_oauth_flow(res.data)
        return create_reply("error")

    async def handle_chrome_oauth_flow(self, auth_url: str) -> ApiResponse:
        """Run the consent flow through the extension and finish it here."""
        if self._message_bridge is None:
            return create_reply("error", "Extension messaging is not available")

        response = await self._message_bridge({"type": "startAuthFlow", "redirectUrl": auth_url})
        if not response.get("success"):
            return create_reply("error", response.get("error"))

        res = await self.handle_oauth_callback(response.get("code", ""))
        if res.status == "error":
            return create_reply("error", res.message or "Something went wrong")

        return create_reply("success", "OAuth flow completed")

    # ------------------------------------------------------------------
    # Rooms & events
    # ------------------------------------------------------------------

    async def get_available_rooms(
        self,
        signal: Optional[AbortSignal],
        start_time: str,
        duration: int,
        time_zone: str,
        seats: int,
        floor: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> ApiResponse:
        params: dict[str, Any] = {
            "startTime": start_time,
            "duration": duration,
            "timeZone": time_zone,
            "seats": seats,
        }
        if floor:
            params["floor"] = floor
        if event_id:
            params["eventId"] = event_id

        return await self._call("GET", "/api/available-rooms", params=params, signal=signal)

    async def get_rooms(self, start_time: str, end_time: str, time_zone: str) -> ApiResponse:
        params = {"startTime": start_time, "endTime": end_time, "timeZone": time_zone}
        return await self._call("GET", "/api/rooms", params=params)

    async def create_event(self, payload: BookRoomRequest) -> ApiResponse:
        body = payload.model_dump(by_alias=True, exclude_none=True)
        return await self._call("POST", "/api/room", json=body)

    async def update_event(self, event_id: str, payload: BookRoomRequest) -> ApiResponse:
        body = {"eventId": event_id, **payload.model_dump(by_alias=True, exclude_none=True)}
        return await self._call("PUT", "/api/room", json=body)

    async def delete_event(self, event_id: str) -> ApiResponse:
        return await self._call("DELETE", "/api/room", params={"id": event_id})

    async def get_max_seat_count(self) -> ApiResponse:
        return await self._call("GET", "/api/highest-seat-count")

    async def get_floors(self) -> ApiResponse:
        return await self._call("GET", "/api/floors")
