import itertools
from datetime import UTC, datetime, timedelta

import pytest

from app.features.visits.domain.models import Visit, VisitStatus
from app.features.visits.repository.visit_repository import VisitTransitionError


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def exists(self, key: str) -> bool:
        return key in self.store

    async def set_if_absent(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        if key in self.store:
            return False
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.store.pop(key, None) is not None

    async def ping(self) -> bool:
        return True


class InMemoryVisitStore:
    """Stands in for VisitRepository with the same claim and transition rules."""

    def __init__(self):
        self.visits: dict[int, Visit] = {}
        self._ids = itertools.count(1)
        self._clock = datetime(2026, 10, 1, 9, 0, tzinfo=UTC)

    def add(self, email: str = "a@x.com", **fields) -> Visit:
        self._clock += timedelta(seconds=1)
        visit = Visit(
            id=next(self._ids),
            email=email,
            status=fields.pop("status", VisitStatus.PENDING),
            created_at=self._clock,
            updated_at=self._clock,
            **fields,
        )
        self.visits[visit.id] = visit
        return visit

    async def claim_batch(self, limit: int = 8) -> list[Visit]:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        pending = sorted(
            (v for v in self.visits.values() if v.status == VisitStatus.PENDING),
            key=lambda v: (v.created_at, v.id),
        )[:limit]
        for visit in pending:
            visit.status = VisitStatus.PROCESSING
        return pending

    async def mark_scheduled(self, visit_id, event_id, invite_link, when_text) -> bool:
        visit = self.visits.get(visit_id)
        if visit and visit.status == VisitStatus.SCHEDULED:
            return False
        if not visit or visit.status != VisitStatus.PROCESSING:
            raise VisitTransitionError(
                visit_id, visit.status if visit else None, VisitStatus.SCHEDULED
            )
        visit.status = VisitStatus.SCHEDULED
        visit.event_id = event_id
        visit.invite_link = invite_link
        visit.when_text = when_text
        return True

    async def mark_failed(self, visit_id, error=None) -> bool:
        visit = self.visits.get(visit_id)
        if visit and visit.status == VisitStatus.FAILED:
            return False
        if not visit or visit.status != VisitStatus.PROCESSING:
            raise VisitTransitionError(
                visit_id, visit.status if visit else None, VisitStatus.FAILED
            )
        visit.status = VisitStatus.FAILED
        visit.last_error = error
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def visit_store():
    return InMemoryVisitStore()
