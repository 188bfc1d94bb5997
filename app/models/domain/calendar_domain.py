# app/models/domain/calendar_domain.py
"""
Calendar Domain Models
Wraps Google Calendar event payloads for the booking service.
"""

from datetime import UTC, datetime


class CalendarEvent:
    """Domain model for calendar events."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.summary = data.get("summary", "")
        self.html_link = data.get("htmlLink")
        self.start_time = self._parse_datetime(data.get("start", {}))
        self.end_time = self._parse_datetime(data.get("end", {}))
        self.external_key = (
            data.get("extendedProperties", {}).get("private", {}).get("externalKey")
        )

    def _parse_datetime(self, dt_data: dict) -> datetime | None:
        """Parse datetime from Google Calendar format."""
        if not dt_data:
            return None

        # All-day events carry a date only
        if "date" in dt_data:
            return datetime.strptime(dt_data["date"], "%Y-%m-%d").replace(tzinfo=UTC)

        if "dateTime" in dt_data:
            try:
                return datetime.fromisoformat(dt_data["dateTime"].replace("Z", "+00:00"))
            except ValueError:
                return None

        return None

    def overlaps(self, other_start: datetime, other_end: datetime) -> bool:
        """True when this event intersects [other_start, other_end)."""
        if not self.start_time or not self.end_time:
            # Google only returns events intersecting the queried window
            return True
        return self.start_time < other_end and self.end_time > other_start
