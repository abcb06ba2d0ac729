"""Idea model and review lifecycle statuses."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

TITLE_MAX_LENGTH = 100
CATEGORY_MAX_LENGTH = 50


class IdeaStatus(StrEnum):
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEEDS_REVISION = "NEEDS_REVISION"


# Statuses that keep an idea in the evaluation queue
OPEN_STATUSES = frozenset(
    {IdeaStatus.SUBMITTED, IdeaStatus.UNDER_REVIEW, IdeaStatus.NEEDS_REVISION}
)
TERMINAL_STATUSES = frozenset({IdeaStatus.APPROVED, IdeaStatus.REJECTED})


class Idea(BaseModel):
    """A submitted idea. ``status`` is a cached projection of its latest evaluation."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = ""
    category: str | None = Field(default=None, max_length=CATEGORY_MAX_LENGTH)
    status: IdeaStatus = IdeaStatus.SUBMITTED
    owner_id: str | None = None
    version: int = 0
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    updated_at: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def days_in_queue(self, *, at: datetime | None = None) -> int:
        at = at or datetime.now(UTC)
        created = datetime.fromisoformat(self.created_at)
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        return max(0, int((at - created).total_seconds() // 86400))

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")

    def to_response(self, *, detail: str = "summary") -> dict:
        data = {
            "_v": "1.0",
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "category": self.category,
        }
        if detail != "summary":
            data.update(
                {
                    "description": self.description,
                    "owner_id": self.owner_id,
                    "version": self.version,
                    "created_at": self.created_at,
                    "updated_at": self.updated_at,
                }
            )
        return data
