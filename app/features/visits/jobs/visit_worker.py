"""
Visit scheduling worker.

Each cycle claims a batch of pending visits, works out when each should
start, asks the booking service for the appointment, and records the
outcome on the visit row. Any number of these workers can run against the
same database; the claim query keeps them from picking up the same visit.
"""

import asyncio
import signal
import time
from collections.abc import Callable
from datetime import UTC, datetime

from app.config import settings
from app.db.helpers import DatabaseError
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

from ..domain.models import Visit, VisitStatus, derive_idempotency_key
from ..domain.occurrence import resolve_visit_time, to_utc_iso
from ..domain.time_labels import LabelResolutionError
from ..repository.visit_repository import VisitRepository, VisitTransitionError
from ..services.scheduling_client import (
    AppointmentRequest,
    BookingConfirmed,
    BookingFailed,
    BookingFailureKind,
    BookingResult,
    SchedulingClient,
)

logger = get_logger(__name__)


class VisitJobMetrics:
    """Per-cycle counters for the visit scheduler."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all metrics for a new cycle."""
        self.start_time = datetime.now(UTC)
        self.visits_claimed = 0
        self.visits_scheduled = 0
        self.visits_failed = 0
        self.failures_by_kind: dict[str, int] = {}
        self.storage_errors = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_scheduled(self, visit_id: int, when_text: str | None, duration_ms: float):
        self.visits_scheduled += 1
        logger.info(
            "Visit scheduled",
            visit_id=visit_id,
            when_text=when_text,
            duration_ms=round(duration_ms, 1),
        )

    def record_failed(self, visit_id: int, kind: BookingFailureKind, message: str):
        self.visits_failed += 1
        self.failures_by_kind[kind.value] = self.failures_by_kind.get(kind.value, 0) + 1
        self.errors.append({"visit_id": visit_id, "kind": kind.value, "error": message})
        logger.warning("Visit failed", visit_id=visit_id, kind=kind.value, error=message)

    def record_storage_error(self, visit_id: int, operation: str, error: str):
        self.storage_errors += 1
        self.errors.append({"visit_id": visit_id, "operation": operation, "error": error})
        logger.error(
            "Visit status update failed", visit_id=visit_id, operation=operation, error=error
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "visit_scheduler",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "visits_claimed": self.visits_claimed,
            "visits_scheduled": self.visits_scheduled,
            "visits_failed": self.visits_failed,
            "failures_by_kind": dict(self.failures_by_kind),
            "storage_errors": self.storage_errors,
            "errors_count": len(self.errors),
        }


class VisitSchedulingJob:
    """One polling cycle of the visit scheduler, plus its status reporting."""

    def __init__(
        self,
        client: SchedulingClient,
        repository: type[VisitRepository] = VisitRepository,
        *,
        batch_size: int | None = None,
        max_concurrency: int | None = None,
        default_tz: str | None = None,
        default_duration_minutes: int | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.client = client
        self.repository = repository
        self.batch_size = batch_size or settings.VISIT_BATCH_SIZE
        self.max_concurrency = max_concurrency or settings.VISIT_MAX_CONCURRENCY
        self.default_tz = default_tz or settings.TZ_DEFAULT
        self.default_duration_minutes = (
            default_duration_minutes or settings.DEFAULT_DURATION_MINUTES
        )
        self._now = now or (lambda: datetime.now(UTC))

        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = VisitJobMetrics()

    async def run_once(self) -> dict:
        """
        Claim one batch and process every visit in it.

        Raises:
            DatabaseError: if the claim itself fails; no visit was touched
        """
        if self.is_running:
            logger.warning("Visit scheduler cycle already running, skipping")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            visits = await self.repository.claim_batch(self.batch_size)
            self.job_metrics.visits_claimed = len(visits)

            if visits:
                semaphore = asyncio.Semaphore(self.max_concurrency)
                await asyncio.gather(
                    *(self._process_with_semaphore(semaphore, visit) for visit in visits)
                )

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            metrics = self.job_metrics.to_dict()
            if visits:
                logger.info("Visit scheduler cycle completed", **metrics)
            return metrics

        finally:
            self.is_running = False

    async def _process_with_semaphore(self, semaphore: asyncio.Semaphore, visit: Visit) -> None:
        async with semaphore:
            try:
                await self.process_visit(visit)
            except Exception as e:
                # Only status recording gets here; the row is left as it is
                logger.exception("Unexpected error recording visit outcome", visit_id=visit.id)
                self.job_metrics.record_storage_error(
                    visit.id, "record_outcome", f"{type(e).__name__}: {e}"
                )

    async def process_visit(self, visit: Visit) -> VisitStatus:
        """Book a single claimed visit and record the outcome."""
        started = time.monotonic()

        try:
            result = await self._request_booking(visit)
        except Exception as e:
            logger.exception("Unexpected error booking visit", visit_id=visit.id)
            result = BookingFailed(
                kind=BookingFailureKind.INFRASTRUCTURE, message=f"{type(e).__name__}: {e}"
            )

        if isinstance(result, BookingConfirmed):
            await self._complete(visit, result, (time.monotonic() - started) * 1000)
            return VisitStatus.SCHEDULED

        await self._fail(visit, result.kind, result.message)
        return VisitStatus.FAILED

    async def _request_booking(self, visit: Visit) -> BookingResult:
        tz_name = visit.tz or self.default_tz

        try:
            resolved = resolve_visit_time(
                label=visit.label,
                start_time=visit.start_time,
                tz_name=tz_name,
                now=self._now(),
            )
        except LabelResolutionError as e:
            return BookingFailed(kind=BookingFailureKind.INPUT, message=str(e))

        request = AppointmentRequest(
            email=visit.email,
            timezone=tz_name,
            start_time=resolved.instant,
            duration_minutes=visit.duration_minutes or self.default_duration_minutes,
            idempotency_key=derive_idempotency_key(
                visit.external_key, visit.room_id, to_utc_iso(resolved.instant)
            ),
            wants_video_link=visit.creates_video_link,
            room_id=visit.room_id,
            agent_id=visit.agent_id,
        )
        return await self.client.create_appointment(request)

    async def _complete(self, visit: Visit, booking: BookingConfirmed, duration_ms: float) -> None:
        try:
            await self.repository.mark_scheduled(
                visit.id, booking.event_id, booking.invite_link, booking.when_text
            )
        except (DatabaseError, VisitTransitionError) as e:
            # The booking exists; the row stays 'processing' for an operator to reconcile
            self.job_metrics.record_storage_error(visit.id, "mark_scheduled", str(e))
            return
        self.job_metrics.record_scheduled(visit.id, booking.when_text, duration_ms)

    async def _fail(self, visit: Visit, kind: BookingFailureKind, message: str) -> None:
        self.job_metrics.record_failed(visit.id, kind, message)
        try:
            await self.repository.mark_failed(visit.id, f"{kind.value}: {message}")
        except (DatabaseError, VisitTransitionError) as e:
            self.job_metrics.record_storage_error(visit.id, "mark_failed", str(e))

    def get_job_status(self) -> dict:
        return {
            "job_name": "visit_scheduler",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "batch_size": self.batch_size,
            "max_concurrency": self.max_concurrency,
            "default_tz": self.default_tz,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }


async def run_visit_scheduler(
    job: VisitSchedulingJob,
    stop_event: asyncio.Event,
    poll_interval_seconds: float | None = None,
) -> None:
    """
    Poll until ``stop_event`` is set.

    A cycle that raises is logged and the loop carries on at the next poll.
    The stop event is only checked between cycles, so a cycle in progress
    always finishes its status updates.
    """
    interval = (
        poll_interval_seconds
        if poll_interval_seconds is not None
        else settings.poll_interval_seconds()
    )

    while not stop_event.is_set():
        try:
            await job.run_once()
        except Exception as e:
            logger.error(
                "Error in visit scheduler loop", error=str(e), error_type=type(e).__name__
            )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except TimeoutError:
            continue


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.warning("Signal handlers not supported on this platform", signal=sig.name)


async def start_visit_scheduler() -> None:
    """
    Entry point for the visit scheduler worker process.

    Opens the database pool, polls until SIGINT/SIGTERM, then lets the
    current cycle finish before closing connections.
    """
    await db_pool.initialize()
    client = SchedulingClient()
    job = VisitSchedulingJob(client=client)
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    logger.info(
        "Visit scheduler started",
        scheduler_url=client.url,
        poll_interval_ms=settings.POLL_INTERVAL_MS,
        default_tz=job.default_tz,
        batch_size=job.batch_size,
    )

    try:
        await run_visit_scheduler(job, stop_event)
    finally:
        await client.close()
        await db_pool.close()
        logger.info("Visit scheduler stopped")


if __name__ == "__main__":
    asyncio.run(start_visit_scheduler())
