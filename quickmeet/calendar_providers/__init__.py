"""Calendar provider abstractions and implementations."""

from __future__ import annotations

import logging

from .base import CalendarProvider, TimeSlot
from .mock import MockCalendarProvider

log = logging.getLogger("quickmeet.calendar_providers")


def get_calendar_provider(settings) -> CalendarProvider:
    """Pick the provider for this deployment. Called once at startup."""
    if settings.use_mock_google_api:
        log.info("Using mock calendar provider (environment=%s)", settings.environment)
        return MockCalendarProvider()

    from .google import GoogleCalendarProvider

    log.info("Using Google calendar provider (customer=%s)", settings.google_customer)
    return GoogleCalendarProvider(customer=settings.google_customer)


__all__ = [
    "CalendarProvider",
    "MockCalendarProvider",
    "TimeSlot",
    "get_calendar_provider",
]
