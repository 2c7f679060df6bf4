"""Session handling for the booking API.

The OAuth callback stores the caller's tokens and Workspace domain in
HTTP-only cookies; ``require_auth`` turns them back into an
``AuthContext`` on every calendar request.

Behavior matrix:
  access token + domain present     → AuthContext
  access token missing              → 401 Unauthorized
  domain missing                    → 401 Unauthorized
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quickmeet.oauth import OAuthProvider, TokenSet

log = logging.getLogger("quickmeet.auth")

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
DOMAIN_COOKIE = "hd"
EMAIL_COOKIE = "email"
DOMAIN_HEADER = "x-workspace-domain"

REFRESH_COOKIE_MAX_AGE = 60 * 60 * 24 * 30

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    """What a calendar handler knows about its caller."""

    client: Any
    domain: str
    access_token: str
    email: Optional[str] = None


def current_oauth_provider(request: Request) -> OAuthProvider:
    return request.app.state.oauth_provider


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthContext:
    """FastAPI dependency: resolve the caller's OAuth client and domain."""
    token = request.cookies.get(ACCESS_COOKIE)
    if not token and credentials is not None:
        token = credentials.credentials

    if not token:
        log.info("Unauthenticated request to %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    domain = request.cookies.get(DOMAIN_COOKIE) or request.headers.get(DOMAIN_HEADER)
    if not domain:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has no Workspace domain.",
        )

    provider = current_oauth_provider(request)
    return AuthContext(
        client=provider.credentials_for(token),
        domain=domain,
        access_token=token,
        email=request.cookies.get(EMAIL_COOKIE),
    )


def _max_age(tokens: TokenSet) -> Optional[int]:
    if tokens.expiry is None:
        return None
    expiry = tokens.expiry
    if expiry.tzinfo is None:
        # google-auth reports naive UTC expiries
        expiry = expiry.replace(tzinfo=timezone.utc)
    remaining = int((expiry - datetime.now(timezone.utc)).total_seconds())
    return max(remaining, 0)


def set_session_cookies(response: Response, tokens: TokenSet, secure: bool = False) -> None:
    """Store a fresh token set on the response."""
    cookie = {"httponly": True, "secure": secure, "samesite": "lax"}

    response.set_cookie(ACCESS_COOKIE, tokens.access_token, max_age=_max_age(tokens), **cookie)
    if tokens.refresh_token:
        response.set_cookie(
            REFRESH_COOKIE, tokens.refresh_token, max_age=REFRESH_COOKIE_MAX_AGE, **cookie
        )
    if tokens.domain:
        response.set_cookie(DOMAIN_COOKIE, tokens.domain, max_age=REFRESH_COOKIE_MAX_AGE, **cookie)
    if tokens.email:
        response.set_cookie(EMAIL_COOKIE, tokens.email, max_age=REFRESH_COOKIE_MAX_AGE, **cookie)


def clear_session_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE, DOMAIN_COOKIE, EMAIL_COOKIE):
        response.delete_cookie(name)
