from datetime import UTC, datetime

import pytest

from app.db.helpers import DatabaseError
from app.features.visits.domain.models import VisitStatus
from app.features.visits.repository import visit_repository
from app.features.visits.repository.visit_repository import (
    CLAIM_BATCH_SQL,
    VisitRepository,
    VisitTransitionError,
)


def _row(visit_id: int, minute: int, **fields) -> dict:
    created = datetime(2026, 10, 19, 9, minute, tzinfo=UTC)
    row = {
        "id": visit_id,
        "email": f"visitor{visit_id}@example.com",
        "status": "processing",
        "created_at": created,
        "updated_at": created,
        "label": "Wednesday afternoon",
    }
    row.update(fields)
    return row


@pytest.mark.asyncio
async def test_claim_batch_returns_oldest_first(monkeypatch):
    calls = []

    async def fake_fetch_all(query, params=()):
        calls.append((query, params))
        return [_row(3, 5), _row(1, 1), _row(2, 1)]

    monkeypatch.setattr(visit_repository, "fetch_all", fake_fetch_all)

    visits = await VisitRepository.claim_batch(8)

    assert [visit.id for visit in visits] == [1, 2, 3]
    assert all(visit.status == VisitStatus.PROCESSING for visit in visits)
    query, params = calls[0]
    assert params == (8,)
    assert "FOR UPDATE SKIP LOCKED" in query
    assert "status = 'pending'" in query


def test_claim_query_skips_locked_rows_oldest_first():
    query = " ".join(CLAIM_BATCH_SQL.split())

    assert "WHERE status = 'pending'" in query
    assert "ORDER BY created_at, id" in query
    assert "LIMIT %s" in query
    assert "FOR UPDATE SKIP LOCKED" in query
    assert "SET status = 'processing'" in query
    assert "RETURNING v.*" in query


@pytest.mark.asyncio
async def test_claim_batch_passes_limit_as_parameter(monkeypatch):
    calls = []

    async def fake_fetch_all(query, params=()):
        calls.append((query, params))
        return []

    monkeypatch.setattr(visit_repository, "fetch_all", fake_fetch_all)

    await VisitRepository.claim_batch(3)

    assert calls == [(CLAIM_BATCH_SQL, (3,))]


@pytest.mark.asyncio
async def test_claim_batch_empty(monkeypatch):
    async def fake_fetch_all(query, params=()):
        return []

    monkeypatch.setattr(visit_repository, "fetch_all", fake_fetch_all)

    assert await VisitRepository.claim_batch() == []


@pytest.mark.asyncio
async def test_claim_batch_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        await VisitRepository.claim_batch(0)


@pytest.mark.asyncio
async def test_claim_batch_surfaces_storage_errors(monkeypatch):
    async def failing_fetch_all(query, params=()):
        raise DatabaseError("connection lost", operation="fetch_all")

    monkeypatch.setattr(visit_repository, "fetch_all", failing_fetch_all)

    with pytest.raises(DatabaseError):
        await VisitRepository.claim_batch(8)


def _fetch_one_sequence(monkeypatch, *results):
    remaining = list(results)
    calls = []

    async def fake_fetch_one(query, params=()):
        calls.append((query, params))
        return remaining.pop(0)

    monkeypatch.setattr(visit_repository, "fetch_one", fake_fetch_one)
    return calls


@pytest.mark.asyncio
async def test_mark_scheduled_from_processing(monkeypatch):
    calls = _fetch_one_sequence(monkeypatch, {"id": 7})

    changed = await VisitRepository.mark_scheduled(
        7, "evt-1", "https://calendar.example/evt-1", "Wednesday at 3:00 PM"
    )

    assert changed is True
    assert calls[0][1] == ("evt-1", "https://calendar.example/evt-1", "Wednesday at 3:00 PM", 7)
    assert "status = 'processing'" in calls[0][0]


@pytest.mark.asyncio
async def test_mark_scheduled_is_idempotent(monkeypatch):
    _fetch_one_sequence(monkeypatch, None, {"status": "scheduled"})

    assert await VisitRepository.mark_scheduled(7, "evt-1", None, "Wednesday at 3:00 PM") is False


@pytest.mark.asyncio
async def test_mark_scheduled_rejects_failed_visit(monkeypatch):
    _fetch_one_sequence(monkeypatch, None, {"status": "failed"})

    with pytest.raises(VisitTransitionError) as exc:
        await VisitRepository.mark_scheduled(7, "evt-1", None, None)

    assert exc.value.current_status == "failed"
    assert exc.value.target_status == VisitStatus.SCHEDULED


@pytest.mark.asyncio
async def test_mark_failed_unknown_visit(monkeypatch):
    _fetch_one_sequence(monkeypatch, None, None)

    with pytest.raises(VisitTransitionError) as exc:
        await VisitRepository.mark_failed(99, "input: bad label")

    assert exc.value.current_status is None


@pytest.mark.asyncio
async def test_mark_failed_records_error(monkeypatch):
    calls = _fetch_one_sequence(monkeypatch, {"id": 4})

    assert await VisitRepository.mark_failed(4, "time_conflict: Existing tour") is True
    assert calls[0][1] == ("time_conflict: Existing tour", 4)


@pytest.mark.asyncio
async def test_mark_failed_is_idempotent(monkeypatch):
    _fetch_one_sequence(monkeypatch, None, {"status": "failed"})

    assert await VisitRepository.mark_failed(4) is False
