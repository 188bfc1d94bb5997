"""
Schedule API Routes
HTTP endpoint that books one appointment on the shared calendar.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.infrastructure.observability.logging import get_logger
from app.models.api.schedule_request import ScheduleRequest
from app.models.api.schedule_response import ScheduleResponse
from app.services.calendar.booking_service import AppointmentBookingService, BookingError

logger = get_logger(__name__)

router = APIRouter(tags=["scheduling"])


def get_booking_service(request: Request) -> AppointmentBookingService:
    """Booking service created during application startup."""
    return request.app.state.booking_service


@router.post("/schedule", response_model=ScheduleResponse)
async def schedule_appointment(
    payload: ScheduleRequest,
    service: AppointmentBookingService = Depends(get_booking_service),
):
    """Book an appointment from a label or an explicit start time."""
    try:
        confirmation = await service.create_appointment(payload)
    except BookingError as e:
        logger.info(
            "Schedule request rejected",
            status_code=e.status_code,
            error=e.error,
            room_id=payload.room_id,
        )
        return JSONResponse(status_code=e.status_code, content=e.to_response())

    return ScheduleResponse(
        event_id=confirmation.event_id,
        invite_link=confirmation.invite_link,
        when_text=confirmation.when_text,
    )
