"""
Service layer for the visit scheduling feature.
"""

from .scheduling_client import (
    AppointmentRequest,
    BookingConfirmed,
    BookingFailed,
    BookingFailureKind,
    BookingResult,
    SchedulingClient,
)

__all__ = [
    "AppointmentRequest",
    "BookingConfirmed",
    "BookingFailed",
    "BookingFailureKind",
    "BookingResult",
    "SchedulingClient",
]
