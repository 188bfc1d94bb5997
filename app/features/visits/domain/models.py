"""
Domain models for the visit scheduling feature.

A visit row moves pending -> processing -> scheduled | failed. Only the
repository changes status; everything else reads these dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from .time_labels import ClockTime, Weekday


class VisitStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SCHEDULED = "scheduled"
    FAILED = "failed"


@dataclass(slots=True)
class Visit:
    """Represents a public.visits row."""

    id: int
    email: str
    status: VisitStatus
    created_at: datetime
    updated_at: datetime
    label: str | None = None
    start_time: datetime | None = None
    tz: str | None = None
    external_key: str | None = None
    room_id: str | None = None
    agent_id: str | None = None
    duration_minutes: int | None = None
    creates_video_link: bool = True
    event_id: str | None = None
    invite_link: str | None = None
    when_text: str | None = None
    last_error: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Visit":
        creates_video_link = row.get("creates_video_link")
        return cls(
            id=row["id"],
            email=row["email"],
            status=VisitStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            label=row.get("label"),
            start_time=row.get("start_time"),
            tz=row.get("tz"),
            external_key=row.get("external_key"),
            room_id=row.get("room_id"),
            agent_id=row.get("agent_id"),
            duration_minutes=row.get("duration_minutes"),
            creates_video_link=True if creates_video_link is None else creates_video_link,
            event_id=row.get("event_id"),
            invite_link=row.get("invite_link"),
            when_text=row.get("when_text"),
            last_error=row.get("last_error"),
        )


@dataclass(frozen=True, slots=True)
class ResolvedTime:
    """
    Where a visit's requested time landed for one scheduling attempt.

    Not persisted: a label means "the next such day", so two attempts on
    different days may resolve the same label to different instants.
    """

    weekday: Weekday | None
    time_of_day: ClockTime | None
    instant: datetime | None


def derive_idempotency_key(external_key: str | None, room_id: str | None, start_iso: str) -> str:
    """The caller's key when given, else ``"<room_id>|<start in UTC ISO>"``."""
    if external_key:
        return external_key
    return f"{room_id or ''}|{start_iso}"
