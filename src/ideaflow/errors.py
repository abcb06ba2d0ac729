"""Error kinds raised by the evaluation workflow engine.

Each error carries a ``kind`` and an HTTP-like ``status_code`` so an outer
layer can tell bad input, missing records and internal failures apart.
"""

from __future__ import annotations


class IdeaflowError(Exception):
    """Base class for all engine errors."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.kind, "status": self.status_code}


class NotFoundError(IdeaflowError, LookupError):
    """Raised when an idea id does not resolve to an existing record."""

    kind = "not_found"
    status_code = 404

    def __init__(self, idea_ids: str | list[str]) -> None:
        ids = [idea_ids] if isinstance(idea_ids, str) else list(idea_ids)
        self.idea_ids = ids
        if len(ids) == 1:
            super().__init__(f"Idea not found: {ids[0]}")
        else:
            super().__init__(f"Ideas not found: {', '.join(ids)}")


class InvalidError(IdeaflowError, ValueError):
    """Raised when input fails validation. No write has happened."""

    kind = "invalid"
    status_code = 400


class LimitExceededError(InvalidError):
    """Raised when a bulk request exceeds the per-call item bound."""

    kind = "limit_exceeded"

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Bulk operations limited to {limit} items maximum (got {size})")


class ConflictError(IdeaflowError):
    """Raised when a conditional status write finds an unexpected idea version."""

    kind = "conflict"
    status_code = 409

    def __init__(self, idea_id: str, expected: int, actual: int | None) -> None:
        self.idea_id = idea_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Idea {idea_id} changed concurrently (expected version {expected}, found {actual})"
        )


class StorageFailureError(IdeaflowError):
    """Raised when the datastore could not complete a write or read.

    The caller must treat the operation as not applied.
    """

    kind = "storage_failure"
    status_code = 500
