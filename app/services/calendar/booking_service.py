"""
Appointment booking against the shared Google calendar.

Order of operations for one request:

1. work out the start instant (explicit start time, else the label)
2. refuse keys that already produced a booking (duplicate)
3. refuse windows that overlap an existing event (time_conflict)
4. reserve the idempotency key in Redis (SET NX), then insert the event
5. release the key again only if Google rejected the insert outright
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from app.config import settings
from app.features.visits.domain.models import derive_idempotency_key
from app.features.visits.domain.occurrence import (
    format_when_text,
    resolve_visit_time,
    to_utc_iso,
)
from app.features.visits.domain.time_labels import LabelResolutionError
from app.infrastructure.observability.logging import get_logger
from app.models.api.schedule_request import ScheduleRequest
from app.services.calendar.google_client import GoogleCalendarError, GoogleCalendarService
from app.services.google_oauth_service import GoogleAccessTokenProvider, GoogleOAuthError
from app.services.redis_client import FastRedisClient, RedisStoreError

logger = get_logger(__name__)

IDEMPOTENCY_KEY_PREFIX = "schedule:idempotency:"

# 4xx answers that do not prove the insert was refused
INDETERMINATE_STATUS_CODES = {408, 429}


class BookingError(Exception):
    """Base class for booking failures; carries the HTTP status to answer with."""

    status_code = 500

    def __init__(self, error: str, **details: Any):
        super().__init__(error)
        self.error = error
        self.details = details

    def to_response(self) -> dict[str, Any]:
        return {"ok": False, "error": self.error, **self.details}


class BookingInputError(BookingError):
    status_code = 400


class TimeConflictError(BookingError):
    status_code = 409

    def __init__(self, conflicts: list[str]):
        super().__init__("time_conflict", conflicts=conflicts)
        self.conflicts = conflicts


class DuplicateBookingError(BookingError):
    status_code = 409

    def __init__(self, when_text: str):
        super().__init__("duplicate", whenText=when_text)
        self.when_text = when_text


class CalendarUnavailableError(BookingError):
    status_code = 500


@dataclass(slots=True)
class BookingConfirmation:
    event_id: str | None
    invite_link: str | None
    when_text: str
    start_time: datetime
    idempotency_key: str


def _insert_was_rejected(error: GoogleCalendarError) -> bool:
    """
    True only when Google definitely did not create the event.

    Timeouts, transport errors and 5xx answers leave the outcome unknown, so
    the idempotency key is kept and a retry with the same key sees a duplicate.
    """
    status = error.status_code
    return status is not None and 400 <= status < 500 and status not in INDETERMINATE_STATUS_CODES


class AppointmentBookingService:
    """Books appointments on one calendar, at most once per idempotency key."""

    def __init__(
        self,
        calendar: GoogleCalendarService,
        token_provider: GoogleAccessTokenProvider,
        idempotency_store: FastRedisClient,
        calendar_id: str | None = None,
        idempotency_ttl_seconds: int | None = None,
    ):
        self.calendar = calendar
        self.token_provider = token_provider
        self.idempotency_store = idempotency_store
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID or "primary"
        self.idempotency_ttl_seconds = idempotency_ttl_seconds or settings.IDEMPOTENCY_TTL_SECONDS

    async def create_appointment(
        self, request: ScheduleRequest, now: datetime | None = None
    ) -> BookingConfirmation:
        """
        Book the requested appointment.

        Raises:
            BookingInputError: the label has no weekday
            DuplicateBookingError: the idempotency key already booked an event
            TimeConflictError: the window overlaps existing events
            CalendarUnavailableError: Google or Redis could not be reached
        """
        try:
            resolved = resolve_visit_time(
                label=request.label,
                start_time=request.start_time,
                tz_name=request.timezone,
                now=now,
            )
        except LabelResolutionError as e:
            raise BookingInputError(str(e)) from e

        start = resolved.instant
        end = start + timedelta(minutes=request.duration_minutes)
        when_text = format_when_text(start, request.timezone)
        key = derive_idempotency_key(request.external_key, request.room_id, to_utc_iso(start))
        store_key = f"{IDEMPOTENCY_KEY_PREFIX}{key}"

        try:
            if await self.idempotency_store.exists(store_key):
                logger.info("Duplicate booking request", idempotency_key=key)
                raise DuplicateBookingError(when_text)
        except RedisStoreError as e:
            raise CalendarUnavailableError("idempotency_check_failed") from e

        try:
            access_token = await self.token_provider.get_access_token()
            existing = await self.calendar.list_events(
                access_token, time_min=start, time_max=end, calendar_id=self.calendar_id
            )
        except (GoogleOAuthError, GoogleCalendarError) as e:
            logger.error("Failed to check calendar availability", error=str(e))
            raise CalendarUnavailableError("availability_check_failed") from e

        conflicts = [event for event in existing if event.overlaps(start, end)]
        if conflicts:
            logger.warning(
                "Calendar conflict", start=start.isoformat(), conflicts=len(conflicts)
            )
            raise TimeConflictError([event.summary for event in conflicts])

        try:
            reserved = await self.idempotency_store.set_if_absent(
                store_key, to_utc_iso(start), self.idempotency_ttl_seconds
            )
        except RedisStoreError as e:
            raise CalendarUnavailableError("idempotency_check_failed") from e
        if not reserved:
            # Another request with the same key won the race
            raise DuplicateBookingError(when_text)

        event_body = self._build_event_body(request, start, end, key)
        try:
            event = await self.calendar.insert_event(
                access_token,
                event_body,
                calendar_id=self.calendar_id,
                send_updates="all",
                with_conference=request.creates_video_link,
            )
        except GoogleCalendarError as e:
            released = _insert_was_rejected(e)
            if released:
                await self.idempotency_store.delete(store_key)
            logger.error(
                "Failed to create calendar event",
                error=str(e),
                status_code=e.status_code,
                idempotency_key_released=released,
                response=e.response_data,
            )
            raise CalendarUnavailableError(str(e) or "event_creation_failed") from e

        logger.info(
            "Event created",
            event_id=event.id,
            html_link=event.html_link,
            when_text=when_text,
            agent_id=request.agent_id,
        )
        return BookingConfirmation(
            event_id=event.id,
            invite_link=event.html_link,
            when_text=when_text,
            start_time=start,
            idempotency_key=key,
        )

    def _build_event_body(
        self, request: ScheduleRequest, start: datetime, end: datetime, key: str
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": settings.EVENT_SUMMARY,
            "description": settings.EVENT_DESCRIPTION,
            "location": settings.EVENT_LOCATION,
            "start": {"dateTime": start.isoformat(), "timeZone": request.timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": request.timezone},
            "attendees": [{"email": str(request.email)}],
            "reminders": {"useDefault": True},
            "guestsCanSeeOtherGuests": False,
            "guestsCanInviteOthers": False,
            "extendedProperties": {"private": {"externalKey": key}},
        }
        if request.creates_video_link:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": str(uuid.uuid4()),
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        return body
