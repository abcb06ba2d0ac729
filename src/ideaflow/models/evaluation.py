"""Evaluation audit record and review decisions."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from ideaflow.models.idea import IdeaStatus

COMMENTS_MAX_LENGTH = 500

BULK_UPDATE_COMMENT = "Bulk status update"
ASSIGNMENT_COMMENT = "Assigned for review"


class Decision(StrEnum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    NEEDS_REVISION = "NEEDS_REVISION"


DECISION_TO_STATUS: dict[Decision, IdeaStatus] = {
    Decision.ACCEPTED: IdeaStatus.APPROVED,
    Decision.REJECTED: IdeaStatus.REJECTED,
    Decision.NEEDS_REVISION: IdeaStatus.NEEDS_REVISION,
}


class EvaluationKind(StrEnum):
    REVIEW = "review"
    BULK_UPDATE = "bulk_update"
    ASSIGNMENT = "assignment"


class Evaluation(BaseModel):
    """One immutable entry in an idea's evaluation log.

    Assignment markers carry no decision; ``resulting_status`` always records
    the status the idea was moved to by this entry.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    idea_id: str
    evaluator_id: str
    decision: Decision | None = None
    kind: EvaluationKind = EvaluationKind.REVIEW
    resulting_status: IdeaStatus
    comments: str = Field(max_length=COMMENTS_MAX_LENGTH)
    file_ref: str | None = None
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    model_config = {"frozen": True}

    @field_validator("comments")
    @classmethod
    def _comments_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("comments cannot be empty")
        return value

    @classmethod
    def for_decision(
        cls,
        *,
        idea_id: str,
        evaluator_id: str,
        decision: Decision,
        comments: str,
        file_ref: str | None = None,
        kind: EvaluationKind = EvaluationKind.REVIEW,
        created_at: str | None = None,
    ) -> Evaluation:
        data = {
            "idea_id": idea_id,
            "evaluator_id": evaluator_id,
            "decision": decision,
            "kind": kind,
            "resulting_status": DECISION_TO_STATUS[decision],
            "comments": comments,
            "file_ref": file_ref,
        }
        if created_at:
            data["created_at"] = created_at
        return cls(**data)

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")

    def to_response(self, *, detail: str = "summary") -> dict:
        data = {
            "_v": "1.0",
            "id": self.id,
            "idea_id": self.idea_id,
            "evaluator_id": self.evaluator_id,
            "decision": self.decision.value if self.decision else None,
            "status": self.resulting_status.value,
            "created_at": self.created_at,
        }
        if detail != "summary":
            data.update(
                {
                    "kind": self.kind.value,
                    "comments": self.comments,
                    "file_ref": self.file_ref,
                }
            )
        return data
