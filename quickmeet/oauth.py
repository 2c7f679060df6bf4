"""Google OAuth2 web flow for the booking backend.

The browser (or the extension bridge) obtains an authorization code from
the URL issued here; the backend exchanges it for tokens and keeps them in
session cookies. Like the calendar provider, the OAuth provider has a mock
twin selected at startup for non-production deployments.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Optional

import httpx
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import id_token as id_token_module
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from quickmeet.calendar_providers.google import SCOPES

log = logging.getLogger("quickmeet.oauth")

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
TOKENINFO_URI = "https://oauth2.googleapis.com/tokeninfo"


@dataclass
class TokenSet:
    """Tokens and identity obtained from an exchange or a refresh."""

    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    email: Optional[str] = None
    domain: Optional[str] = None  # Workspace "hd" claim


class OAuthProvider(ABC):
    @abstractmethod
    def authorization_url(self, state: Optional[str] = None) -> str:
        """Return the consent-screen URL the user must visit."""

    @abstractmethod
    async def exchange_code(self, code: str) -> TokenSet:
        """Exchange an authorization code for tokens."""

    @abstractmethod
    async def refresh(self, refresh_token: str) -> TokenSet:
        """Mint a new access token. Raises RefreshError when refused."""

    @abstractmethod
    async def validate(self, access_token: str) -> bool:
        """Return True if the access token is still accepted."""

    def credentials_for(self, access_token: str) -> Any:
        """Build the per-request client handed to the calendar provider."""
        return Credentials(token=access_token)


class GoogleOAuthProvider(OAuthProvider):
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Optional[list[str]] = None,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("Google OAuth client id and secret are required.")
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._scopes = scopes or SCOPES

    def _client_config(self) -> dict[str, Any]:
        return {
            "web": {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self._redirect_uri],
            }
        }

    def _flow(self) -> Flow:
        return Flow.from_client_config(
            self._client_config(),
            scopes=self._scopes,
            redirect_uri=self._redirect_uri,
            # URL and exchange use separate Flow instances
            autogenerate_code_verifier=False,
        )

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def authorization_url(self, state: Optional[str] = None) -> str:
        url, _ = self._flow().authorization_url(
            access_type="offline",
            prompt="consent",  # always hand out a refresh token
            include_granted_scopes="true",
            state=state,
        )
        return url

    def _exchange(self, code: str) -> TokenSet:
        flow = self._flow()
        flow.fetch_token(code=code)
        credentials = flow.credentials

        id_info: dict[str, Any] = {}
        if credentials.id_token:
            id_info = id_token_module.verify_oauth2_token(
                credentials.id_token, Request(), self._client_id
            )

        return TokenSet(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry=credentials.expiry,
            email=id_info.get("email"),
            domain=id_info.get("hd"),
        )

    async def exchange_code(self, code: str) -> TokenSet:
        tokens = await self._run_in_executor(self._exchange, code)
        log.info("OAuth code exchanged for %s (domain=%s)", tokens.email, tokens.domain)
        return tokens

    def _refresh(self, refresh_token: str) -> TokenSet:
        credentials = Credentials(
            None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=self._client_id,
            client_secret=self._client_secret,
        )
        credentials.refresh(Request())
        return TokenSet(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token or refresh_token,
            expiry=credentials.expiry,
        )

    async def refresh(self, refresh_token: str) -> TokenSet:
        return await self._run_in_executor(self._refresh, refresh_token)

    async def validate(self, access_token: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(TOKENINFO_URI, params={"access_token": access_token})
        except httpx.HTTPError as exc:
            log.warning("Token validation request failed: %s", exc)
            return False
        return resp.status_code == 200


class MockOAuthProvider(OAuthProvider):
    """Issues opaque ``mock-*`` tokens for a fixed Workspace domain."""

    ACCESS_PREFIX = "mock-access-"
    REFRESH_PREFIX = "mock-refresh-"

    def __init__(self, redirect_uri: str, domain: str = "example.com") -> None:
        self._redirect_uri = redirect_uri
        self._domain = domain
        self._revoked: set[str] = set()

    def authorization_url(self, state: Optional[str] = None) -> str:
        url = f"{self._redirect_uri}?code=mock-code"
        if state:
            url += f"&state={state}"
        return url

    async def exchange_code(self, code: str) -> TokenSet:
        if not code:
            raise ValueError("Authorization code is required")
        return TokenSet(
            access_token=self.ACCESS_PREFIX + secrets.token_urlsafe(12),
            refresh_token=self.REFRESH_PREFIX + secrets.token_urlsafe(12),
            email=f"user@{self._domain}",
            domain=self._domain,
        )

    async def refresh(self, refresh_token: str) -> TokenSet:
        if not refresh_token.startswith(self.REFRESH_PREFIX) or refresh_token in self._revoked:
            raise RefreshError("invalid_grant: Token has been expired or revoked.")
        return TokenSet(
            access_token=self.ACCESS_PREFIX + secrets.token_urlsafe(12),
            refresh_token=refresh_token,
        )

    async def validate(self, access_token: str) -> bool:
        return access_token.startswith(self.ACCESS_PREFIX) and access_token not in self._revoked

    def revoke(self, token: str) -> None:
        self._revoked.add(token)


def get_oauth_provider(settings) -> OAuthProvider:
    """Pick the OAuth provider for this deployment. Called once at startup."""
    if settings.use_mock_google_api:
        return MockOAuthProvider(settings.oauth_redirect_url, domain=settings.mock_domain)
    return GoogleOAuthProvider(
        settings.google_client_id,
        settings.google_client_secret,
        settings.oauth_redirect_url,
    )
