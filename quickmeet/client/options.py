"""Option lists for the booking form dropdowns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

DURATION_OPTIONS = (15, 30, 45, 60, 90, 120)


@dataclass
class DropdownOption:
    value: str
    text: str


@dataclass
class RoomOption(DropdownOption):
    seats: int = 0
    floor: Optional[str] = None


def populate_duration_options() -> list[str]:
    """Meeting lengths offered, in minutes."""
    return [str(minutes) for minutes in DURATION_OPTIONS]


def populate_room_capacity(max_seats: int) -> list[str]:
    """Seat counts from 1 up to the largest room (at least one option)."""
    return [str(n) for n in range(1, max(max_seats, 1) + 1)]


def format_duration(minutes: int) -> str:
    """``15`` → ``15 mins``, ``60`` → ``1 hr``, ``90`` → ``1 hr 30 mins``."""
    hours, rest = divmod(minutes, 60)
    parts: list[str] = []
    if hours:
        parts.append(f"{hours} hr" if hours == 1 else f"{hours} hrs")
    if rest or not hours:
        parts.append(f"{rest} mins")
    return " ".join(parts)


def create_dropdown_options(
    options: Iterable[str], kind: Optional[str] = None
) -> list[DropdownOption]:
    """Wrap raw values; ``kind="time"`` renders minute values as durations."""
    if kind == "time":
        return [DropdownOption(value=o, text=format_duration(int(o))) for o in options]
    return [DropdownOption(value=o, text=o) for o in options]
