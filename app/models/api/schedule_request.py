# app/models/api/schedule_request.py
"""
Schedule API request models.
Used by the /schedule route for input validation.
"""

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.config import settings


class ScheduleRequest(BaseModel):
    """Request for booking one appointment."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr = Field(..., description="Attendee email address")
    label: str | None = Field(default=None, description='e.g., "Monday 1pm"')
    start_time: datetime | None = Field(
        default=None, alias="startTime", description="Explicit ISO-8601 start instant"
    )
    duration_minutes: int = Field(
        default=45, ge=15, le=240, alias="durationMinutes", description="Length (15-240)"
    )
    timezone: str = Field(
        default_factory=lambda: settings.TZ_DEFAULT, description="IANA timezone name"
    )
    creates_video_link: bool = Field(
        default=True, alias="createsVideoLink", description="Attach a Google Meet link"
    )
    room_id: str | None = Field(default=None, alias="roomId")
    agent_id: str | None = Field(default=None, alias="agentId")
    external_key: str | None = Field(
        default=None, alias="externalKey", description="Idempotency key"
    )

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def _label_or_start_time(self) -> "ScheduleRequest":
        if not (self.label and self.label.strip()) and self.start_time is None:
            raise ValueError('Either "label" or "startTime" must be provided')
        return self
