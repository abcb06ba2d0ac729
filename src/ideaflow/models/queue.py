"""Evaluation queue page models."""

from __future__ import annotations

import math

from pydantic import BaseModel

from ideaflow.models.evaluation import Evaluation
from ideaflow.models.idea import Idea


class QueueItem(BaseModel):
    """An open idea with a preview of its most recent evaluation."""

    idea: Idea
    latest_evaluation: Evaluation | None = None
    days_in_queue: int = 0

    def to_response(self) -> dict:
        data = self.idea.to_response(detail="full")
        data["days_in_queue"] = self.days_in_queue
        data["latest_evaluation"] = (
            self.latest_evaluation.to_response(detail="full") if self.latest_evaluation else None
        )
        return data


class QueuePage(BaseModel):
    items: list[QueueItem]
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        if self.limit <= 0:
            return 1
        return self.offset // self.limit + 1

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)

    def to_response(self) -> dict:
        return {
            "_v": "1.0",
            "count": len(self.items),
            "ideas": [item.to_response() for item in self.items],
            "pagination": {
                "total": self.total,
                "page": self.page,
                "pages": self.pages,
                "limit": self.limit,
                "offset": self.offset,
            },
        }
