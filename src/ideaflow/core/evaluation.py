"""Evaluation Workflow Engine.

Moves ideas through their review lifecycle. Every status change is paired with
an append-only evaluation record written in the same transaction, audit row
first and status projection second.
"""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from ideaflow.errors import (
    ConflictError,
    InvalidError,
    LimitExceededError,
    NotFoundError,
    StorageFailureError,
)
from ideaflow.events.bus import EventBus
from ideaflow.events.types import EventType
from ideaflow.models.evaluation import (
    ASSIGNMENT_COMMENT,
    BULK_UPDATE_COMMENT,
    COMMENTS_MAX_LENGTH,
    DECISION_TO_STATUS,
    Decision,
    Evaluation,
    EvaluationKind,
)
from ideaflow.models.idea import OPEN_STATUSES, TERMINAL_STATUSES, Idea, IdeaStatus
from ideaflow.models.queue import QueueItem, QueuePage
from ideaflow.storage.base import StorageBackend

logger = logging.getLogger(__name__)

BULK_LIMIT = 100


class EvaluationEngine:
    """Engine for submitting evaluations and triaging the review queue.

    Concurrent decisions on the same idea are not serialized: each one appends
    its own record and the idea keeps the status of whichever write committed
    last. Callers that need a single authoritative decision pass
    ``expected_version`` to ``submit_evaluation``.
    """

    def __init__(
        self,
        store: StorageBackend,
        event_bus: EventBus,
        *,
        bulk_limit: int = BULK_LIMIT,
    ) -> None:
        """Initialize the EvaluationEngine.

        Args:
            store: Transactional store providing both repositories
            event_bus: Event bus for emitting workflow events
            bulk_limit: Maximum ids accepted by a single bulk call
        """
        self._store = store
        self._event_bus = event_bus
        self._bulk_limit = bulk_limit

    async def get_idea(self, idea_id: str) -> Idea:
        """Get an idea by ID.

        Raises:
            NotFoundError: If the idea does not exist
        """
        data = await self._store.get_idea(idea_id)
        if data is None:
            raise NotFoundError(idea_id)
        return Idea(**data)

    async def submit_evaluation(
        self,
        idea_id: str,
        evaluator_id: str,
        decision: Decision | str,
        comments: str,
        file_ref: str | None = None,
        *,
        expected_version: int | None = None,
    ) -> Evaluation:
        """Record a decision on an idea and move it to the mapped status.

        The evaluation row and the status update commit as one unit.

        Args:
            idea_id: Idea being evaluated
            evaluator_id: Verified identity of the evaluator
            decision: ACCEPTED, REJECTED or NEEDS_REVISION
            comments: Non-empty free text, at most 500 characters
            file_ref: Optional reference to a supporting file
            expected_version: Only apply if the idea is still at this version

        Returns:
            The created Evaluation

        Raises:
            InvalidError: If decision, comments or evaluator_id fail validation
            NotFoundError: If the idea does not exist
            ConflictError: If expected_version no longer matches
            StorageFailureError: If the write could not complete
        """
        decision = _parse_decision(decision)
        comments = _validate_comments(comments)
        evaluator_id = _require_text(evaluator_id, "evaluator_id")
        status = DECISION_TO_STATUS[decision]

        async with self._store.transaction() as tx:
            current = await tx.get_idea(idea_id)
            if current is None:
                raise NotFoundError(idea_id)
            if expected_version is not None and current["version"] != expected_version:
                raise ConflictError(idea_id, expected_version, current["version"])

            evaluation = _build(
                Evaluation.for_decision,
                idea_id=idea_id,
                evaluator_id=evaluator_id,
                decision=decision,
                comments=comments,
                file_ref=file_ref,
            )
            await tx.insert_evaluation(evaluation.to_storage())
            updated = await tx.update_idea_status(
                idea_id, status, expected_version=expected_version
            )
            if not updated:
                if expected_version is not None:
                    raise ConflictError(idea_id, expected_version, None)
                raise NotFoundError(idea_id)

        logger.info(
            f"Evaluation {evaluation.id} on idea {idea_id}: {decision} -> {status} "
            f"(by {evaluator_id})"
        )

        await self._event_bus.emit(
            EventType.EVALUATION_SUBMITTED,
            {
                "evaluation_id": evaluation.id,
                "idea_id": idea_id,
                "evaluator_id": evaluator_id,
                "decision": decision.value,
                "status": status.value,
                "previous_status": current["status"],
            },
        )

        return evaluation

    async def get_evaluation_history(self, idea_id: str) -> list[Evaluation]:
        """Return every evaluation of an idea, oldest first.

        Raises:
            NotFoundError: If the idea does not exist
        """
        if await self._store.get_idea(idea_id) is None:
            raise NotFoundError(idea_id)

        rows = await self._store.list_evaluations_for_idea(idea_id)
        return [Evaluation(**row) for row in rows]

    async def bulk_status_update(
        self,
        idea_ids: Iterable[str],
        decision: Decision | str,
        evaluator_id: str,
    ) -> int:
        """Apply one decision to a set of ideas.

        One evaluation per idea, marked as a bulk update, is written together
        with the status change for the whole set in a single transaction.
        Repeated ids are collapsed to one entry, so a duplicated id gets a single
        evaluation and counts once in the result.

        Returns:
            Number of distinct ideas updated

        Raises:
            LimitExceededError: If more than ``bulk_limit`` ids are given
            InvalidError: If the id set is empty or the decision is invalid
            NotFoundError: If any id does not exist
        """
        ids = self._validate_bulk_ids(idea_ids)
        decision = _parse_decision(decision)
        evaluator_id = _require_text(evaluator_id, "evaluator_id")
        status = DECISION_TO_STATUS[decision]

        async with self._store.transaction() as tx:
            await self._require_all(tx, ids)
            evaluations = [
                _build(
                    Evaluation.for_decision,
                    idea_id=idea_id,
                    evaluator_id=evaluator_id,
                    decision=decision,
                    comments=BULK_UPDATE_COMMENT,
                    kind=EvaluationKind.BULK_UPDATE,
                )
                for idea_id in ids
            ]
            await tx.insert_evaluations([e.to_storage() for e in evaluations])
            await self._update_all(tx, ids, status)

        logger.info(f"Bulk status update: {len(ids)} ideas -> {status} (by {evaluator_id})")

        await self._event_bus.emit(
            EventType.IDEAS_BULK_UPDATED,
            {
                "idea_ids": ids,
                "decision": decision.value,
                "status": status.value,
                "evaluator_id": evaluator_id,
            },
        )

        return len(ids)

    async def bulk_assign(self, idea_ids: Iterable[str], assignee_id: str) -> int:
        """Put a set of ideas under review by one assignee.

        Writes an assignment marker per idea with the assignee as evaluator.
        Ideas that already carry a final decision are not reopened.
        Repeated ids are collapsed the same way as in ``bulk_status_update``.

        Returns:
            Number of distinct ideas assigned

        Raises:
            LimitExceededError: If more than ``bulk_limit`` ids are given
            InvalidError: If the id set is empty or an idea is APPROVED/REJECTED
            NotFoundError: If any id does not exist
        """
        ids = self._validate_bulk_ids(idea_ids)
        assignee_id = _require_text(assignee_id, "assignee_id")

        async with self._store.transaction() as tx:
            ideas = await self._require_all(tx, ids)
            decided = [i["id"] for i in ideas if IdeaStatus(i["status"]) in TERMINAL_STATUSES]
            if decided:
                raise InvalidError(
                    f"Cannot assign ideas that already have a final decision: {', '.join(decided)}"
                )

            markers = [
                _build(
                    Evaluation,
                    idea_id=idea_id,
                    evaluator_id=assignee_id,
                    decision=None,
                    kind=EvaluationKind.ASSIGNMENT,
                    resulting_status=IdeaStatus.UNDER_REVIEW,
                    comments=ASSIGNMENT_COMMENT,
                )
                for idea_id in ids
            ]
            await tx.insert_evaluations([m.to_storage() for m in markers])
            await self._update_all(tx, ids, IdeaStatus.UNDER_REVIEW)

        logger.info(f"Assigned {len(ids)} ideas to {assignee_id}")

        await self._event_bus.emit(
            EventType.IDEAS_ASSIGNED,
            {"idea_ids": ids, "assignee_id": assignee_id},
        )

        return len(ids)

    async def get_evaluation_queue(self, limit: int = 10, offset: int = 0) -> QueuePage:
        """Page through open ideas, newest submission first.

        Each item carries the idea's latest evaluation as a preview. ``limit``
        and ``offset`` are expected to be clamped by the caller.
        """
        statuses = sorted(OPEN_STATUSES)
        total = await self._store.count_ideas_by_status(statuses)
        rows = await self._store.list_ideas_by_status(statuses, limit=limit, offset=offset)
        ideas = [Idea(**row) for row in rows]

        latest = await self._store.latest_evaluations([idea.id for idea in ideas])
        items = [
            QueueItem(
                idea=idea,
                latest_evaluation=Evaluation(**latest[idea.id]) if idea.id in latest else None,
                days_in_queue=idea.days_in_queue(),
            )
            for idea in ideas
        ]

        logger.debug(f"Evaluation queue: {len(items)} of {total} (offset {offset})")

        return QueuePage(items=items, total=total, limit=limit, offset=offset)

    def _validate_bulk_ids(self, idea_ids: Iterable[str]) -> list[str]:
        """De-duplicate ids, keeping first-seen order, and enforce the bound."""
        if idea_ids is None or isinstance(idea_ids, str):
            raise InvalidError("idea_ids must be a non-empty collection of ids")

        raw = list(idea_ids)
        if not raw:
            raise InvalidError("idea_ids must be a non-empty collection of ids")
        if len(raw) > self._bulk_limit:
            raise LimitExceededError(len(raw), self._bulk_limit)

        return list(dict.fromkeys(_require_text(i, "idea_id") for i in raw))

    async def _require_all(self, tx: StorageBackend, ids: list[str]) -> list[dict[str, Any]]:
        ideas = await tx.get_ideas(ids)
        found = {idea["id"] for idea in ideas}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError(missing)
        return ideas

    async def _update_all(self, tx: StorageBackend, ids: list[str], status: IdeaStatus) -> None:
        updated = await tx.update_status_for_many(ids, status)
        if updated != len(ids):
            # Rolls back the audit batch written above
            raise StorageFailureError(f"Status update reached {updated} of {len(ids)} ideas")


def _parse_decision(decision: Decision | str) -> Decision:
    if isinstance(decision, Decision):
        return decision
    if isinstance(decision, str):
        try:
            return Decision(decision.strip().upper())
        except ValueError:
            pass
    allowed = ", ".join(d.value for d in Decision)
    raise InvalidError(f"Invalid decision: {decision!r}. Must be one of {allowed}")


def _validate_comments(comments: str) -> str:
    if not isinstance(comments, str) or not comments.strip():
        raise InvalidError("comments cannot be empty")
    if len(comments) > COMMENTS_MAX_LENGTH:
        raise InvalidError(f"comments must be {COMMENTS_MAX_LENGTH} characters or less")
    return comments


def _require_text(value: str, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidError(f"{name} cannot be empty")
    return value.strip()


def _build(factory, **fields) -> Evaluation:
    try:
        return factory(**fields)
    except ValidationError as e:
        raise InvalidError(str(e)) from e
