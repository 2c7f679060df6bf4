"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("quickmeet.config")


class Settings(BaseSettings):
    # Deployment: "production" talks to Google, anything else uses the mocks
    environment: str = "development"

    # Google OAuth client
    google_client_id: str = ""
    google_client_secret: str = ""
    oauth_redirect_url: str = "http://localhost:3000/oauth/callback"

    # Admin Directory customer for room resources
    google_customer: str = "my_customer"

    # Workspace domain reported by the mock OAuth provider
    mock_domain: str = "example.com"

    # Session cookies
    cookie_secure: bool = False
    cors_origins: str = "http://localhost:3000"

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    # Client
    backend_endpoint: str = "http://127.0.0.1:8080"
    app_environment: str = "web"  # "web" or "chrome"
    request_timeout_seconds: float = 10.0
    development_timeout_seconds: float = 1000.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def use_mock_google_api(self) -> bool:
        return not self.is_production

    @property
    def client_timeout(self) -> float:
        if self.environment == "development":
            return self.development_timeout_seconds
        return self.request_timeout_seconds

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        if self.is_production:
            if not self.google_client_id or not self.google_client_secret:
                raise ValueError(
                    "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set "
                    "when ENVIRONMENT=production."
                )
            if not self.cookie_secure:
                warnings.append(
                    "COOKIE_SECURE is false in production; session cookies "
                    "will be sent over plain HTTP."
                )
        else:
            warnings.append(
                f"ENVIRONMENT={self.environment}: using the mock Google calendar "
                "and OAuth providers."
            )

        if "*" in self.allowed_origins:
            warnings.append(
                "CORS_ORIGINS contains '*'; browsers refuse credentialed "
                "requests to wildcard origins."
            )

        if self.app_environment not in ("web", "chrome"):
            warnings.append(
                f"APP_ENVIRONMENT={self.app_environment!r} is not one of 'web', 'chrome'."
            )

        return warnings


settings = Settings()
