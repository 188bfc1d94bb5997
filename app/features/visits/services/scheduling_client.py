"""
HTTP client for the appointment booking service.

Each call is a single round trip with no retry: the worker records whatever
comes back and moves on. Outcomes are returned as values, never raised, so
the worker handles every kind of failure in one place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.occurrence import to_utc_iso

logger = get_logger(__name__)


class BookingFailureKind(StrEnum):
    INPUT = "input"
    TIME_CONFLICT = "time_conflict"
    DUPLICATE = "duplicate"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True, slots=True)
class AppointmentRequest:
    email: str
    timezone: str
    start_time: datetime
    duration_minutes: int
    idempotency_key: str
    wants_video_link: bool = True
    room_id: str | None = None
    agent_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "email": self.email,
            "timezone": self.timezone,
            "startTime": to_utc_iso(self.start_time),
            "durationMinutes": self.duration_minutes,
            "createsVideoLink": self.wants_video_link,
            "externalKey": self.idempotency_key,
        }
        if self.room_id:
            payload["roomId"] = self.room_id
        if self.agent_id:
            payload["agentId"] = self.agent_id
        return payload


@dataclass(frozen=True, slots=True)
class BookingConfirmed:
    event_id: str | None
    invite_link: str | None
    when_text: str | None


@dataclass(frozen=True, slots=True)
class BookingFailed:
    kind: BookingFailureKind
    message: str
    status_code: int | None = None
    details: dict[str, Any] = field(default_factory=dict)


BookingResult = BookingConfirmed | BookingFailed


def classify_failure(status_code: int, data: dict[str, Any]) -> BookingFailureKind:
    """Map a booking service error response onto a failure kind."""
    error = data.get("error")
    if error == "duplicate":
        return BookingFailureKind.DUPLICATE
    if error == "time_conflict":
        return BookingFailureKind.TIME_CONFLICT
    if status_code in (400, 422):
        return BookingFailureKind.INPUT
    return BookingFailureKind.INFRASTRUCTURE


class SchedulingClient:
    """Client for POST /schedule on the booking service."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url or settings.SCHEDULER_URL
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.SCHEDULER_TIMEOUT_SECONDS)
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def create_appointment(self, request: AppointmentRequest) -> BookingResult:
        payload = request.to_payload()

        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(
                "Booking service request failed",
                url=self.url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return BookingFailed(
                kind=BookingFailureKind.INFRASTRUCTURE,
                message=f"{type(e).__name__}: {e}",
            )

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {"raw": response.text[:500]}
        if not isinstance(data, dict):
            data = {"raw": data}

        if response.is_success and data.get("ok"):
            return BookingConfirmed(
                event_id=data.get("eventId"),
                invite_link=data.get("inviteLink") or data.get("htmlLink"),
                when_text=data.get("whenText"),
            )

        kind = classify_failure(response.status_code, data)
        error = data.get("error")
        message = error if isinstance(error, str) else f"Scheduler {response.status_code}: {data}"
        return BookingFailed(
            kind=kind,
            message=message,
            status_code=response.status_code,
            details={k: v for k, v in data.items() if k not in ("ok", "error")},
        )
