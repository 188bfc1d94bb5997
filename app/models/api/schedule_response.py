# app/models/api/schedule_response.py
"""
Schedule API response models.
"""

from pydantic import BaseModel, ConfigDict, Field


class ScheduleResponse(BaseModel):
    """Successful booking."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    event_id: str | None = Field(default=None, alias="eventId")
    invite_link: str | None = Field(default=None, alias="inviteLink")
    when_text: str = Field(..., alias="whenText")
