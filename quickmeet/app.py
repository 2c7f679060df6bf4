"""FastAPI application: HTTP endpoints for room booking.

Endpoints:

  GET    /api/rooms                 Caller's room bookings in a window
  GET    /api/available-rooms       Free rooms for a start time and duration
  GET    /api/highest-seat-count    Largest room capacity in the domain
  POST   /api/room                  Book a room
  PUT    /api/room                  Move / edit a booking
  DELETE /api/room?id=              Cancel a booking
  GET    /api/floors                Floors that have rooms
  GET    /auth/oauth2/url           Consent-screen URL
  POST   /auth/oauth2/callback      Exchange an authorization code
  GET    /auth/token/refresh        Renew the access token
  GET    /auth/session/validate     Check the current session
  POST   /auth/logout               Drop the session
  GET    /health                    Health check

Every response body is an envelope: {"status", "message", "data"}.
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import logging
import time
from typing import Optional

# Configure root logger early so all app loggers have a handler and are
# visible when run via `uvicorn quickmeet.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError
from starlette.exceptions import HTTPException as StarletteHTTPException

from quickmeet.auth import (
    DOMAIN_COOKIE,
    REFRESH_COOKIE,
    AuthContext,
    clear_session_cookies,
    current_oauth_provider,
    require_auth,
    set_session_cookies,
)
from quickmeet.calendar_providers import get_calendar_provider
from quickmeet.calendar_providers.base import CalendarProvider
from quickmeet.calendar_service import CalendarService
from quickmeet.config import Settings, settings
from quickmeet.models import (
    ApiResponse,
    BookRoomRequest,
    OAuthCallbackRequest,
    UpdateRoomRequest,
    create_reply,
    create_response,
)
from quickmeet.oauth import OAuthProvider, get_oauth_provider
from quickmeet.timeutils import compute_end_time

log = logging.getLogger("quickmeet.app")

SIGN_IN_ROUTE = "/signin"

_START_TIME = time.time()


def _error_body(status_code: int, message: str) -> dict:
    data = {"redirect": SIGN_IN_ROUTE} if status_code in (401, 403) else None
    return create_reply("error", message, data).model_dump()


def _end_time(start_time: str, duration: int) -> str:
    try:
        return compute_end_time(start_time, duration)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid startTime {start_time!r}",
        )


def get_calendar_service(request: Request) -> CalendarService:
    return CalendarService(request.app.state.calendar_provider)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            _error_body(exc.status_code, str(exc.detail)),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
            message = f"Invalid {field}: {first.get('msg', 'bad value')}"
        else:
            message = "Invalid request"
        return JSONResponse(_error_body(400, message), status_code=400)

    @app.exception_handler(HttpError)
    async def google_error(request: Request, exc: HttpError) -> JSONResponse:
        status_code = int(getattr(exc.resp, "status", 502) or 502)
        message = getattr(exc, "reason", None) or "Google API request failed"
        log.error("Google API error on %s: %s %s", request.url.path, status_code, message)
        return JSONResponse(_error_body(status_code, message), status_code=status_code)

    @app.exception_handler(RefreshError)
    async def refresh_error(request: Request, exc: RefreshError) -> JSONResponse:
        log.warning("Google rejected credentials on %s: %s", request.url.path, exc)
        return JSONResponse(_error_body(401, "Session expired"), status_code=401)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        log.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(_error_body(500, "Something went wrong"), status_code=500)


def create_app(
    config: Optional[Settings] = None,
    calendar_provider: Optional[CalendarProvider] = None,
    oauth_provider: Optional[OAuthProvider] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Providers are chosen here, once, from the deployment configuration
    unless passed in explicitly.
    """
    config = config or settings
    for warning in config.validate_startup():
        log.warning(warning)

    app = FastAPI(
        title="QuickMeet",
        description="Meeting-room booking on Google Calendar",
        version="0.1.0",
    )
    app.state.settings = config
    app.state.calendar_provider = calendar_provider or get_calendar_provider(config)
    app.state.oauth_provider = oauth_provider or get_oauth_provider(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_exception_handlers(app)

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── OAuth / session ────────────────────────────────────────

    @app.get("/auth/oauth2/url")
    async def oauth_url(
        provider: OAuthProvider = Depends(current_oauth_provider),
    ) -> ApiResponse:
        return create_response(provider.authorization_url())

    @app.post("/auth/oauth2/callback")
    async def oauth_callback(
        body: OAuthCallbackRequest,
        response: Response,
        provider: OAuthProvider = Depends(current_oauth_provider),
    ) -> ApiResponse:
        try:
            tokens = await provider.exchange_code(body.code)
        except Exception as e:
            log.error("OAuth code exchange failed: %s", e)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Failed to exchange authorization code",
            )

        if not tokens.domain:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only Google Workspace accounts can book rooms.",
            )

        set_session_cookies(response, tokens, secure=config.cookie_secure)
        log.info("Signed in %s (%s)", tokens.email, tokens.domain)
        return create_response(True, "Signed in")

    @app.get("/auth/token/refresh")
    async def refresh_token(
        request: Request,
        response: Response,
        provider: OAuthProvider = Depends(current_oauth_provider),
    ) -> ApiResponse:
        token = request.cookies.get(REFRESH_COOKIE)
        if not token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="No refresh token.",
            )

        try:
            tokens = await provider.refresh(token)
        except RefreshError as e:
            log.warning("Token refresh refused: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session expired. Please sign in again.",
            )

        tokens.domain = tokens.domain or request.cookies.get(DOMAIN_COOKIE)
        set_session_cookies(response, tokens, secure=config.cookie_secure)
        expires_at = tokens.expiry.isoformat() if tokens.expiry else None
        return create_response({"refreshed": True, "expiresAt": expires_at}, "Token refreshed")

    @app.get("/auth/session/validate")
    async def validate_session(
        ctx: AuthContext = Depends(require_auth),
        provider: OAuthProvider = Depends(current_oauth_provider),
    ) -> ApiResponse:
        if not await provider.validate(ctx.access_token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session expired.",
            )
        return create_response(True)

    @app.post("/auth/logout")
    async def logout(response: Response) -> ApiResponse:
        clear_session_cookies(response)
        return create_response(True, "Signed out")

    # ── Calendar ───────────────────────────────────────────────

    @app.get("/api/rooms")
    async def get_events(
        start_time: str = Query(..., alias="startTime"),
        end_time: str = Query(..., alias="endTime"),
        time_zone: str = Query(..., alias="timeZone"),
        ctx: AuthContext = Depends(require_auth),
        service: CalendarService = Depends(get_calendar_service),
    ) -> ApiResponse:
        events = await service.get_events(ctx.client, ctx.domain, start_time, end_time, time_zone)
        return create_response(events)

    @app.get("/api/available-rooms")
    async def get_available_rooms(
        start_time: str = Query(..., alias="startTime"),
        duration: int = Query(..., gt=0),
        time_zone: str = Query(..., alias="timeZone"),
        seats: int = Query(1, ge=1),
        floor: Optional[str] = Query(None),
        event_id: Optional[str] = Query(None, alias="eventId"),
        ctx: AuthContext = Depends(require_auth),
        service: CalendarService = Depends(get_calendar_service),
    ) -> ApiResponse:
        end_time = _end_time(start_time, duration)
        rooms = await service.get_available_rooms(
            ctx.client, ctx.domain, start_time, end_time, time_zone, seats, floor, event_id
        )
        return create_response(rooms)

    @app.get("/api/highest-seat-count")
    async def get_max_seat_capacity(
        ctx: AuthContext = Depends(require_auth),
        service: CalendarService = Depends(get_calendar_service),
    ) -> ApiResponse:
        count = await service.get_highest_seat_capacity(ctx.client, ctx.domain)
        return create_response(count)

    @app.post("/api/room")
    async def book_room(
        body: BookRoomRequest,
        ctx: AuthContext = Depends(require_auth),
        service: CalendarService = Depends(get_calendar_service),
    ) -> ApiResponse:
        end_time = _end_time(body.start_time, body.duration)
        event = await service.create_event(
            ctx.client,
            ctx.domain,
            body.start_time,
            end_time,
            body.room,
            body.create_conference,
            body.title,
            body.attendees,
            time_zone=body.time_zone,
        )
        return create_response(event, "Room has been booked")

    @app.put("/api/room")
    async def update_event(
        body: UpdateRoomRequest,
        ctx: AuthContext = Depends(require_auth),
        service: CalendarService = Depends(get_calendar_service),
    ) -> ApiResponse:
        end_time = _end_time(body.start_time, body.duration)
        event = await service.update_event(
            ctx.client,
            ctx.domain,
            body.event_id,
            body.start_time,
            end_time,
            body.create_conference,
            body.title,
            body.attendees,
            body.room,
            time_zone=body.time_zone,
        )
        return create_response(event, "Event has been updated!")

    @app.delete("/api/room")
    async def delete_room(
        event_id: str = Query(..., alias="id"),
        ctx: AuthContext = Depends(require_auth),
        service: CalendarService = Depends(get_calendar_service),
    ) -> ApiResponse:
        deleted = await service.delete_event(ctx.client, event_id)
        return create_response(deleted, "Event has been deleted")

    @app.get("/api/floors")
    async def list_floors(
        ctx: AuthContext = Depends(require_auth),
        service: CalendarService = Depends(get_calendar_service),
    ) -> ApiResponse:
        floors = await service.list_floors(ctx.client, ctx.domain)
        return create_response(floors)

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "quickmeet.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
