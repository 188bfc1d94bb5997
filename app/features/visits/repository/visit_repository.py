"""
Repository for the public.visits table.

The claim query is the only place workers coordinate: it locks candidate
rows with FOR UPDATE SKIP LOCKED and flips them to 'processing' in the same
statement, so concurrent claimers never receive the same row and never wait
on each other's locks.
"""

from datetime import datetime

from app.db.helpers import fetch_all, fetch_one
from app.infrastructure.observability.logging import get_logger

from ..domain.models import Visit, VisitStatus

logger = get_logger(__name__)

DEFAULT_CLAIM_LIMIT = 8

CLAIM_BATCH_SQL = """
    WITH next AS (
        SELECT id
        FROM public.visits
        WHERE status = 'pending'
        ORDER BY created_at, id
        LIMIT %s
        FOR UPDATE SKIP LOCKED
    )
    UPDATE public.visits v
       SET status = 'processing', updated_at = NOW()
      FROM next
     WHERE v.id = next.id
    RETURNING v.*
"""

MARK_SCHEDULED_SQL = """
    UPDATE public.visits
       SET status = 'scheduled',
           event_id = %s,
           invite_link = %s,
           when_text = %s,
           last_error = NULL,
           updated_at = NOW()
     WHERE id = %s AND status = 'processing'
    RETURNING id
"""

MARK_FAILED_SQL = """
    UPDATE public.visits
       SET status = 'failed', last_error = %s, updated_at = NOW()
     WHERE id = %s AND status = 'processing'
    RETURNING id
"""


class VisitTransitionError(Exception):
    """Raised when a visit is not in a state that allows the requested transition."""

    def __init__(
        self, visit_id: int, current_status: str | None, target_status: VisitStatus
    ):
        current = current_status or "missing"
        super().__init__(f"Visit {visit_id} cannot move from {current} to {target_status}")
        self.visit_id = visit_id
        self.current_status = current_status
        self.target_status = target_status


class VisitRepository:
    """Raw SQL helpers for visit claiming and status transitions."""

    @classmethod
    async def claim_batch(cls, limit: int = DEFAULT_CLAIM_LIMIT) -> list[Visit]:
        """
        Atomically claim up to ``limit`` pending visits, oldest first.

        Rows locked by another claimer are skipped rather than waited on.
        Returns an empty list when nothing is claimable.

        Raises:
            DatabaseError: if the statement fails; nothing was claimed
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")

        rows = await fetch_all(CLAIM_BATCH_SQL, (limit,))
        visits = sorted((Visit.from_row(row) for row in rows), key=lambda v: (v.created_at, v.id))

        if visits:
            logger.info(
                "Claimed visit batch",
                count=len(visits),
                visit_ids=[visit.id for visit in visits],
            )
        return visits

    @classmethod
    async def mark_scheduled(
        cls,
        visit_id: int,
        event_id: str | None,
        invite_link: str | None,
        when_text: str | None,
    ) -> bool:
        """
        Move a processing visit to 'scheduled' and store the booking details.

        Returns True when this call made the transition, False when the visit
        was already scheduled.

        Raises:
            VisitTransitionError: visit missing or in another state
            DatabaseError: if the update fails
        """
        row = await fetch_one(MARK_SCHEDULED_SQL, (event_id, invite_link, when_text, visit_id))
        if row:
            return True

        current = await cls._current_status(visit_id)
        if current == VisitStatus.SCHEDULED:
            logger.debug("Visit already scheduled", visit_id=visit_id)
            return False
        raise VisitTransitionError(visit_id, current, VisitStatus.SCHEDULED)

    @classmethod
    async def mark_failed(cls, visit_id: int, error: str | None = None) -> bool:
        """
        Move a processing visit to 'failed', recording why.

        Returns True when this call made the transition, False when the visit
        was already failed.

        Raises:
            VisitTransitionError: visit missing or in another state
            DatabaseError: if the update fails
        """
        row = await fetch_one(MARK_FAILED_SQL, (error, visit_id))
        if row:
            return True

        current = await cls._current_status(visit_id)
        if current == VisitStatus.FAILED:
            logger.debug("Visit already failed", visit_id=visit_id)
            return False
        raise VisitTransitionError(visit_id, current, VisitStatus.FAILED)

    @classmethod
    async def get_visit(cls, visit_id: int) -> Visit | None:
        row = await fetch_one("SELECT * FROM public.visits WHERE id = %s", (visit_id,))
        return Visit.from_row(row) if row else None

    @classmethod
    async def create_visit(
        cls,
        email: str,
        *,
        label: str | None = None,
        start_time: datetime | None = None,
        tz: str | None = None,
        external_key: str | None = None,
        room_id: str | None = None,
        agent_id: str | None = None,
        duration_minutes: int | None = None,
        creates_video_link: bool = True,
    ) -> Visit:
        """Insert a new pending visit."""
        query = """
            INSERT INTO public.visits (
                email, label, start_time, tz, external_key, room_id, agent_id,
                duration_minutes, creates_video_link
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
        """
        row = await fetch_one(
            query,
            (
                email,
                label,
                start_time,
                tz,
                external_key,
                room_id,
                agent_id,
                duration_minutes,
                creates_video_link,
            ),
        )
        return Visit.from_row(row)

    @classmethod
    async def _current_status(cls, visit_id: int) -> str | None:
        row = await fetch_one("SELECT status FROM public.visits WHERE id = %s", (visit_id,))
        return row["status"] if row else None
