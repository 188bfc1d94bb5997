"""
Google Calendar API client for the booking service.
Lists events in a window (conflict checks) and inserts booked appointments.
"""

import asyncio
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from app.infrastructure.observability.logging import get_logger
from app.models.domain.calendar_domain import CalendarEvent

logger = get_logger(__name__)

# Google Calendar API configuration
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30  # seconds (calendar operations can be slower)
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


def _events_url(calendar_id: str) -> str:
    # Group calendar ids contain "#"
    return f"{CALENDAR_API_BASE_URL}/calendars/{quote(calendar_id, safe='@')}/events"


class GoogleCalendarError(Exception):
    """Custom exception for Google Calendar API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleCalendarService:
    """
    Service for the Google Calendar API calls the booking flow needs.

    Reads are retried with backoff; inserts are sent once, since a retried
    insert after a lost response would create a second event.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request_with_retry(
        self, method: str, url: str, *, retry: bool = True, **kwargs
    ) -> httpx.Response:
        attempts = MAX_RETRIES if retry else 1
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < attempts:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Calendar API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= attempts:
                    raise
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Calendar API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Calendar API retry loop exhausted")

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Parse a Calendar API response.

        Raises:
            GoogleCalendarError: If the response is an error or not JSON
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise GoogleCalendarError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Calendar API {operation} failed with non-JSON response",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise GoogleCalendarError(
                f"Calendar API error (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        error_info = error_data.get("error", {})
        if not isinstance(error_info, dict):
            error_info = {"message": str(error_info)}
        error_code = str(error_info.get("code", response.status_code))
        error_message = error_info.get("message", "Unknown Calendar API error")

        logger.error(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        raise GoogleCalendarError(
            self._map_calendar_error(error_code, error_message),
            error_code=error_code,
            status_code=response.status_code,
            response_data=error_data,
        )

    def _map_calendar_error(self, error_code: str, error_message: str) -> str:
        error_mappings = {
            "403": "Calendar access denied. Please check permissions.",
            "404": "Calendar or event not found.",
            "400": "Invalid calendar request format.",
            "401": "Calendar authorization expired. Please reconnect.",
            "429": "Too many calendar requests. Please try again later.",
            "500": "Google Calendar service temporarily unavailable.",
        }
        return error_mappings.get(error_code, f"Calendar error: {error_message}")

    async def list_events(
        self,
        access_token: str,
        time_min: datetime,
        time_max: datetime,
        calendar_id: str = CALENDAR_PRIMARY,
        max_results: int = 50,
    ) -> list[CalendarEvent]:
        """
        List single events intersecting [time_min, time_max), ordered by start.

        Raises:
            GoogleCalendarError: If listing events fails
        """
        try:
            url = _events_url(calendar_id)
            params = {
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": max_results,
            }

            response = await self._request_with_retry(
                "GET", url, headers=self._get_auth_headers(access_token), params=params
            )
            data = self._handle_api_response(response, "list_events")

            events = [CalendarEvent(item) for item in data.get("items", [])]
            logger.debug(
                "Events listed successfully", calendar_id=calendar_id, event_count=len(events)
            )
            return events

        except GoogleCalendarError:
            raise
        except Exception as e:
            logger.error("Unexpected error listing events", calendar_id=calendar_id, error=str(e))
            raise GoogleCalendarError(f"Failed to list events: {e}") from e

    async def insert_event(
        self,
        access_token: str,
        event_body: dict[str, Any],
        calendar_id: str = CALENDAR_PRIMARY,
        send_updates: str = "all",
        with_conference: bool = False,
    ) -> CalendarEvent:
        """
        Insert an event and send invitations.

        Raises:
            GoogleCalendarError: If creating the event fails
        """
        try:
            url = _events_url(calendar_id)
            params = {
                "sendUpdates": send_updates,
                "conferenceDataVersion": 1 if with_conference else 0,
            }

            logger.info(
                "Creating calendar event",
                summary=event_body.get("summary"),
                start_time=event_body.get("start", {}).get("dateTime"),
                calendar_id=calendar_id,
            )

            response = await self._request_with_retry(
                "POST",
                url,
                retry=False,
                headers=self._get_auth_headers(access_token),
                params=params,
                json=event_body,
            )
            data = self._handle_api_response(response, "insert_event")

            event = CalendarEvent(data)
            logger.info("Event created successfully", event_id=event.id)
            return event

        except GoogleCalendarError:
            raise
        except Exception as e:
            logger.error("Unexpected error creating event", error=str(e))
            raise GoogleCalendarError(f"Failed to create event: {e}") from e
