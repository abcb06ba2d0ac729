"""Ideaflow data models."""

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

__all__ = [
    "ASSIGNMENT_COMMENT",
    "BULK_UPDATE_COMMENT",
    "COMMENTS_MAX_LENGTH",
    "DECISION_TO_STATUS",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "Decision",
    "Evaluation",
    "EvaluationKind",
    "Idea",
    "IdeaStatus",
    "QueueItem",
    "QueuePage",
]
