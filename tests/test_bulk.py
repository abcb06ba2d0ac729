"""Tests for bulk status updates and bulk assignment."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ideaflow.core.evaluation import EvaluationEngine
from ideaflow.errors import InvalidError, LimitExceededError, NotFoundError, StorageFailureError
from ideaflow.events.types import EventType
from ideaflow.models.evaluation import ASSIGNMENT_COMMENT, BULK_UPDATE_COMMENT, EvaluationKind
from ideaflow.models.idea import IdeaStatus


async def _make_many(make_idea, count: int, **fields) -> list[str]:
    return [(await make_idea(**fields)).id for _ in range(count)]


async def _evaluation_count(store) -> int:
    return (await store.get_stats())["evaluations"]


# --- bulk_status_update ---


@pytest.mark.asyncio
async def test_bulk_update_fifty(engine: EvaluationEngine, make_idea):
    """Fifty ideas each get one bulk-update evaluation and the new status."""
    ids = await _make_many(make_idea, 50)

    updated = await engine.bulk_status_update(ids, "REJECTED", "ev-admin")

    assert updated == 50
    for idea_id in ids:
        history = await engine.get_evaluation_history(idea_id)
        assert len(history) == 1
        assert history[0].comments == "Bulk status update"
        assert history[0].kind == EvaluationKind.BULK_UPDATE
        assert history[0].evaluator_id == "ev-admin"
        assert (await engine.get_idea(idea_id)).status == IdeaStatus.REJECTED


@pytest.mark.asyncio
async def test_bulk_update_maps_decision(engine, make_idea):
    """Bulk ACCEPTED approves every idea."""
    ids = await _make_many(make_idea, 3)

    await engine.bulk_status_update(ids, "ACCEPTED", "ev-1")

    for idea_id in ids:
        assert (await engine.get_idea(idea_id)).status == IdeaStatus.APPROVED


@pytest.mark.asyncio
async def test_bulk_update_at_limit(engine, make_idea):
    """Exactly 100 ids is allowed."""
    ids = await _make_many(make_idea, 100)

    assert await engine.bulk_status_update(ids, "NEEDS_REVISION", "ev-1") == 100


@pytest.mark.asyncio
async def test_bulk_update_over_limit_has_no_side_effects(engine, store, make_idea):
    """101 ids are refused without any repository write."""
    ids = await _make_many(make_idea, 101)

    with (
        patch.object(store, "insert_evaluations", wraps=store.insert_evaluations) as create,
        patch.object(store, "update_status_for_many", wraps=store.update_status_for_many) as update,
    ):
        with pytest.raises(LimitExceededError, match=r"(?i)limited to 100"):
            await engine.bulk_status_update(ids, "ACCEPTED", "ev-1")

    create.assert_not_called()
    update.assert_not_called()
    assert await _evaluation_count(store) == 0
    statuses = {(await engine.get_idea(i)).status for i in ids}
    assert statuses == {IdeaStatus.SUBMITTED}


@pytest.mark.asyncio
async def test_limit_checked_before_existence(engine):
    """The size bound is checked before ids are looked up."""
    ids = [f"idea-{n}" for n in range(101)]

    with pytest.raises(LimitExceededError) as exc_info:
        await engine.bulk_status_update(ids, "ACCEPTED", "ev-1")

    assert exc_info.value.size == 101
    assert exc_info.value.limit == 100
    assert isinstance(exc_info.value, InvalidError)
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("idea_ids", [[], (), None, "idea-1"])
async def test_bulk_update_requires_id_collection(engine, idea_ids):
    """Empty or non-collection id sets are rejected."""
    with pytest.raises(InvalidError, match="non-empty"):
        await engine.bulk_status_update(idea_ids, "ACCEPTED", "ev-1")


@pytest.mark.asyncio
async def test_bulk_update_invalid_decision(engine, store, make_idea):
    """UNDER_REVIEW is not a decision."""
    ids = await _make_many(make_idea, 2)

    with pytest.raises(InvalidError, match="Invalid decision"):
        await engine.bulk_status_update(ids, "UNDER_REVIEW", "ev-1")

    assert await _evaluation_count(store) == 0


@pytest.mark.asyncio
async def test_bulk_update_deduplicates(engine, make_idea):
    """Repeated ids are updated and counted once."""
    ids = await _make_many(make_idea, 2)

    updated = await engine.bulk_status_update([ids[0], ids[1], ids[0]], "ACCEPTED", "ev-1")

    assert updated == 2
    assert len(await engine.get_evaluation_history(ids[0])) == 1


@pytest.mark.asyncio
async def test_bulk_update_unknown_id_writes_nothing(engine, store, make_idea):
    """One unknown id aborts the whole batch."""
    ids = await _make_many(make_idea, 3)

    with pytest.raises(NotFoundError) as exc_info:
        await engine.bulk_status_update([*ids, "ghost"], "ACCEPTED", "ev-1")

    assert exc_info.value.idea_ids == ["ghost"]
    assert await _evaluation_count(store) == 0
    for idea_id in ids:
        assert (await engine.get_idea(idea_id)).status == IdeaStatus.SUBMITTED


@pytest.mark.asyncio
async def test_bulk_update_status_failure_rolls_back_audit(engine, store, make_idea):
    """A failed status batch rolls back the audit batch."""
    ids = await _make_many(make_idea, 5)

    with patch.object(
        store, "update_status_for_many", side_effect=StorageFailureError("disk full")
    ):
        with pytest.raises(StorageFailureError):
            await engine.bulk_status_update(ids, "ACCEPTED", "ev-1")

    assert await _evaluation_count(store) == 0
    for idea_id in ids:
        assert (await engine.get_idea(idea_id)).status == IdeaStatus.SUBMITTED


@pytest.mark.asyncio
async def test_bulk_update_partial_status_write_rolls_back(engine, store, make_idea):
    """A short status update count rolls back the batch."""
    ids = await _make_many(make_idea, 4)

    with patch.object(store, "update_status_for_many", return_value=3):
        with pytest.raises(StorageFailureError, match="3 of 4"):
            await engine.bulk_status_update(ids, "ACCEPTED", "ev-1")

    assert await _evaluation_count(store) == 0


@pytest.mark.asyncio
async def test_bulk_update_custom_limit(store, bus, make_idea):
    """The bound follows the configured bulk_limit."""
    engine = EvaluationEngine(store, bus, bulk_limit=2)
    ids = await _make_many(make_idea, 3)

    with pytest.raises(LimitExceededError, match="limited to 2"):
        await engine.bulk_status_update(ids, "ACCEPTED", "ev-1")

    assert await engine.bulk_status_update(ids[:2], "ACCEPTED", "ev-1") == 2


@pytest.mark.asyncio
async def test_bulk_update_emits_event(engine, bus, make_idea):
    """Bulk updates emit ideas.bulk_updated once."""
    events = []

    async def handler(event_type, data):
        events.append(data)

    bus.on(EventType.IDEAS_BULK_UPDATED, handler)
    ids = await _make_many(make_idea, 2)

    await engine.bulk_status_update(ids, "REJECTED", "ev-1")

    assert events == [
        {"idea_ids": ids, "decision": "REJECTED", "status": "REJECTED", "evaluator_id": "ev-1"}
    ]


# --- bulk_assign ---


@pytest.mark.asyncio
async def test_bulk_assign(engine, make_idea):
    """Assignment writes a marker per idea and sets UNDER_REVIEW."""
    ids = await _make_many(make_idea, 3)

    assigned = await engine.bulk_assign(ids, "ev-7")

    assert assigned == 3
    for idea_id in ids:
        assert (await engine.get_idea(idea_id)).status == IdeaStatus.UNDER_REVIEW
        history = await engine.get_evaluation_history(idea_id)
        assert len(history) == 1
        marker = history[0]
        assert marker.kind == EvaluationKind.ASSIGNMENT
        assert marker.decision is None
        assert marker.evaluator_id == "ev-7"
        assert marker.resulting_status == IdeaStatus.UNDER_REVIEW
        assert marker.comments == ASSIGNMENT_COMMENT


@pytest.mark.asyncio
async def test_bulk_assign_reassigns_open_ideas(engine, make_idea):
    """Open ideas can be reassigned."""
    under_review = await make_idea(status=IdeaStatus.UNDER_REVIEW)
    revision = await make_idea(status=IdeaStatus.NEEDS_REVISION)

    assert await engine.bulk_assign([under_review.id, revision.id], "ev-2") == 2
    assert (await engine.get_idea(revision.id)).status == IdeaStatus.UNDER_REVIEW


@pytest.mark.asyncio
async def test_bulk_assign_rejects_decided_ideas(engine, store, make_idea):
    """Approved or rejected ideas are not reopened by assignment."""
    open_idea = await make_idea()
    approved = await make_idea(status=IdeaStatus.APPROVED)

    with pytest.raises(InvalidError, match="final decision"):
        await engine.bulk_assign([open_idea.id, approved.id], "ev-2")

    assert await _evaluation_count(store) == 0
    assert (await engine.get_idea(open_idea.id)).status == IdeaStatus.SUBMITTED
    assert (await engine.get_idea(approved.id)).status == IdeaStatus.APPROVED


@pytest.mark.asyncio
async def test_bulk_assign_over_limit(engine, store):
    """Assignment shares the 100 id bound."""
    with patch.object(store, "insert_evaluations", wraps=store.insert_evaluations) as create:
        with pytest.raises(LimitExceededError, match=r"(?i)limited to 100"):
            await engine.bulk_assign([f"i{n}" for n in range(101)], "ev-2")

    create.assert_not_called()


@pytest.mark.asyncio
async def test_bulk_assign_requires_assignee(engine, make_idea):
    """A blank assignee is rejected."""
    ids = await _make_many(make_idea, 1)

    with pytest.raises(InvalidError, match="assignee_id"):
        await engine.bulk_assign(ids, "")


@pytest.mark.asyncio
async def test_bulk_assign_unknown_id(engine, store):
    """Assigning an unknown id writes nothing."""
    with pytest.raises(NotFoundError):
        await engine.bulk_assign(["ghost"], "ev-2")

    assert await _evaluation_count(store) == 0


@pytest.mark.asyncio
async def test_assign_then_decide(engine, make_idea):
    """An assigned idea can then be decided in bulk."""
    ids = await _make_many(make_idea, 2)

    await engine.bulk_assign(ids, "ev-2")
    await engine.bulk_status_update(ids, "ACCEPTED", "ev-2")

    for idea_id in ids:
        history = await engine.get_evaluation_history(idea_id)
        assert [e.kind for e in history] == [EvaluationKind.ASSIGNMENT, EvaluationKind.BULK_UPDATE]
        assert history[-1].comments == BULK_UPDATE_COMMENT
        assert (await engine.get_idea(idea_id)).status == IdeaStatus.APPROVED


@pytest.mark.asyncio
async def test_bulk_assign_deduplicates(engine, make_idea):
    """A repeated id gets one assignment marker and counts once."""
    ids = await _make_many(make_idea, 2)

    assigned = await engine.bulk_assign([ids[0], ids[1], ids[0], ids[0]], "ev-7")

    assert assigned == 2
    assert len(await engine.get_evaluation_history(ids[0])) == 1
