"""Stored per-user booking preferences."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

log = logging.getLogger("quickmeet.client.preferences")

DEFAULT_TITLE = "Quick Meeting"


class Preferences(BaseModel):
    """Defaults the booking form starts from.

    ``duration`` and ``seats`` left unset fall back to the first dropdown
    option.
    """

    duration: Optional[int] = None
    seats: Optional[int] = None
    floor: Optional[str] = None
    title: str = DEFAULT_TITLE


def load_preferences(path: Path) -> Preferences:
    """Read preferences from disk, falling back to defaults."""
    if not path.exists():
        return Preferences()
    try:
        return Preferences.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        log.warning("Ignoring unreadable preferences at %s: %s", path, e)
        return Preferences()


def save_preferences(path: Path, preferences: Preferences) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(preferences.model_dump_json(indent=2), encoding="utf-8")
