"""Abstract storage interfaces consumed by the workflow engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from typing import Any


class IdeaRepository(ABC):
    """Persistence for idea records.

    Status writes are the only idea mutation the engine performs. Every write
    must join the caller's open ``transaction()`` when there is one.
    """

    @abstractmethod
    async def insert_idea(self, idea: dict[str, Any]) -> dict[str, Any]:
        """Insert an idea (submission path). Returns the inserted idea."""

    @abstractmethod
    async def get_idea(self, idea_id: str) -> dict[str, Any] | None:
        """Get an idea by ID. Returns None if not found."""

    @abstractmethod
    async def get_ideas(self, idea_ids: Iterable[str]) -> list[dict[str, Any]]:
        """Get every idea whose ID is in ``idea_ids``. Missing IDs are skipped."""

    @abstractmethod
    async def update_idea_status(
        self,
        idea_id: str,
        status: str,
        *,
        expected_version: int | None = None,
    ) -> bool:
        """Set one idea's status and bump its version.

        With ``expected_version`` the write only applies if the stored version
        matches. Returns True if a row was updated.
        """

    @abstractmethod
    async def update_status_for_many(self, idea_ids: Iterable[str], status: str) -> int:
        """Set status for every idea in ``idea_ids``. Returns rows updated."""

    @abstractmethod
    async def count_ideas_by_status(self, statuses: Iterable[str]) -> int:
        """Count ideas whose status is in ``statuses``."""

    @abstractmethod
    async def list_ideas_by_status(
        self,
        statuses: Iterable[str],
        *,
        limit: int = 10,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List ideas whose status is in ``statuses``, newest first."""

    @abstractmethod
    async def list_ideas(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        owner_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List ideas with optional filters, newest first."""


class EvaluationRepository(ABC):
    """Append-only persistence for evaluation records."""

    @abstractmethod
    async def insert_evaluation(self, evaluation: dict[str, Any]) -> dict[str, Any]:
        """Append one evaluation. Returns the inserted record."""

    @abstractmethod
    async def insert_evaluations(
        self, evaluations: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Append a batch of evaluations as one all-or-nothing write."""

    @abstractmethod
    async def list_evaluations_for_idea(self, idea_id: str) -> list[dict[str, Any]]:
        """All evaluations for an idea, oldest first."""

    @abstractmethod
    async def latest_evaluations(self, idea_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Most recent evaluation per idea, keyed by idea ID."""


class StorageBackend(IdeaRepository, EvaluationRepository):
    """A transactional store exposing both repositories."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize database schema and connections."""

    @abstractmethod
    async def close(self) -> None:
        """Close all connections."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StorageBackend]:
        """Open an atomic unit.

        Writes made inside the block commit together when it exits normally
        and are rolled back when it raises.
        """

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
