"""Idea submission service.

Creates ideas in SUBMITTED and reads them back. Status changes are left to
the EvaluationEngine; nothing here mutates an existing idea.
"""

import logging

from ideaflow.errors import InvalidError, NotFoundError
from ideaflow.events.bus import EventBus
from ideaflow.events.types import EventType
from ideaflow.models.idea import CATEGORY_MAX_LENGTH, TITLE_MAX_LENGTH, Idea, IdeaStatus
from ideaflow.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class IdeaService:
    """Submission path for ideas."""

    def __init__(self, store: StorageBackend, event_bus: EventBus) -> None:
        self._store = store
        self._event_bus = event_bus

    async def create(
        self,
        *,
        title: str,
        description: str = "",
        category: str | None = None,
        owner_id: str | None = None,
    ) -> Idea:
        """Create a new idea with status SUBMITTED.

        Raises:
            InvalidError: If title is empty or a field is too long
        """
        if not title or not title.strip():
            raise InvalidError("title cannot be empty")
        if len(title.strip()) > TITLE_MAX_LENGTH:
            raise InvalidError(f"title must be {TITLE_MAX_LENGTH} characters or less")
        if category and len(category) > CATEGORY_MAX_LENGTH:
            raise InvalidError(f"category must be {CATEGORY_MAX_LENGTH} characters or less")

        idea = Idea(
            title=title.strip(),
            description=description or "",
            category=category,
            owner_id=owner_id,
            status=IdeaStatus.SUBMITTED,
        )

        await self._store.insert_idea(idea.to_storage())

        logger.info(f"Created idea: {idea.id} - {idea.title}")

        await self._event_bus.emit(
            EventType.IDEA_CREATED,
            {"idea_id": idea.id, "title": idea.title, "owner_id": owner_id},
        )

        return idea

    async def get(self, idea_id: str) -> Idea:
        data = await self._store.get_idea(idea_id)
        if data is None:
            raise NotFoundError(idea_id)
        return Idea(**data)

    async def list_ideas(
        self,
        *,
        status: IdeaStatus | str | None = None,
        category: str | None = None,
        owner_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Idea]:
        """List ideas with optional filtering, newest first."""
        if status is not None:
            try:
                status = IdeaStatus(str(status).upper())
            except ValueError as e:
                raise InvalidError(f"Invalid status: {status}") from e

        data_list = await self._store.list_ideas(
            status=status,
            category=category,
            owner_id=owner_id,
            limit=limit,
            offset=offset,
        )

        return [Idea(**data) for data in data_list]
