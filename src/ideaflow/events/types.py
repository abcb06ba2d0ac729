"""Event type constants for Ideaflow."""

from enum import StrEnum


class EventType(StrEnum):
    IDEA_CREATED = "idea.created"

    EVALUATION_SUBMITTED = "evaluation.submitted"

    IDEAS_BULK_UPDATED = "ideas.bulk_updated"
    IDEAS_ASSIGNED = "ideas.assigned"
