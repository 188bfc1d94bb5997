"""
Tests for the POST /schedule endpoint.
"""

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.routes.schedule import get_booking_service
from app.services.calendar.booking_service import (
    BookingConfirmation,
    BookingInputError,
    CalendarUnavailableError,
    DuplicateBookingError,
    TimeConflictError,
)

client = TestClient(app)


class StubBookingService:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.requests = []

    async def create_appointment(self, request, now=None):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def use_service():
    def _apply(service):
        app.dependency_overrides[get_booking_service] = lambda: service
        return service

    yield _apply
    app.dependency_overrides.clear()


def test_schedule_success(use_service):
    service = use_service(
        StubBookingService(
            result=BookingConfirmation(
                event_id="evt-1",
                invite_link="https://calendar.google.com/event?eid=evt-1",
                when_text="Wednesday at 3:00 PM",
                start_time=datetime(2026, 10, 21, 19, 0, tzinfo=UTC),
                idempotency_key="visit-1",
            )
        )
    )

    response = client.post(
        "/schedule",
        json={
            "email": "a@x.com",
            "label": "Wednesday afternoon",
            "durationMinutes": 45,
            "externalKey": "visit-1",
            "roomId": "room-7",
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "eventId": "evt-1",
        "inviteLink": "https://calendar.google.com/event?eid=evt-1",
        "whenText": "Wednesday at 3:00 PM",
    }
    request = service.requests[0]
    assert request.external_key == "visit-1"
    assert request.room_id == "room-7"
    assert request.timezone == "America/New_York"
    assert request.creates_video_link is True


def test_schedule_label_without_weekday(use_service):
    use_service(
        StubBookingService(
            error=BookingInputError('Label must include a weekday (e.g., "Wednesday", "Tue").')
        )
    )

    response = client.post("/schedule", json={"email": "a@x.com", "label": "next week"})

    assert response.status_code == 400
    assert response.json() == {
        "ok": False,
        "error": 'Label must include a weekday (e.g., "Wednesday", "Tue").',
    }


def test_schedule_duplicate(use_service):
    use_service(StubBookingService(error=DuplicateBookingError("Wednesday at 3:00 PM")))

    response = client.post("/schedule", json={"email": "a@x.com", "label": "Wed 3pm"})

    assert response.status_code == 409
    assert response.json() == {"ok": False, "error": "duplicate", "whenText": "Wednesday at 3:00 PM"}


def test_schedule_time_conflict(use_service):
    use_service(StubBookingService(error=TimeConflictError(["Grand Villa Tour"])))

    response = client.post("/schedule", json={"email": "a@x.com", "label": "Wed 3pm"})

    assert response.status_code == 409
    assert response.json() == {
        "ok": False,
        "error": "time_conflict",
        "conflicts": ["Grand Villa Tour"],
    }


def test_schedule_calendar_unavailable(use_service):
    use_service(StubBookingService(error=CalendarUnavailableError("availability_check_failed")))

    response = client.post("/schedule", json={"email": "a@x.com", "label": "Wed 3pm"})

    assert response.status_code == 500
    assert response.json()["error"] == "availability_check_failed"


@pytest.mark.parametrize(
    "body",
    [
        {"label": "Wed 3pm"},
        {"email": "not-an-email", "label": "Wed 3pm"},
        {"email": "a@x.com"},
        {"email": "a@x.com", "label": "Wed 3pm", "durationMinutes": 10},
        {"email": "a@x.com", "label": "Wed 3pm", "durationMinutes": 300},
        {"email": "a@x.com", "label": "Wed 3pm", "timezone": "Mars/Base"},
    ],
)
def test_schedule_invalid_request(use_service, body):
    service = use_service(StubBookingService())

    response = client.post("/schedule", json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["ok"] is False
    assert data["error"] == "invalid_request"
    assert data["details"]
    assert service.requests == []
