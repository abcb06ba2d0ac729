"""Ideaflow storage layer."""

from ideaflow.storage.base import EvaluationRepository, IdeaRepository, StorageBackend
from ideaflow.storage.sqlite_store import SQLiteStore

__all__ = ["EvaluationRepository", "IdeaRepository", "SQLiteStore", "StorageBackend"]
