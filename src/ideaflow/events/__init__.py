"""Ideaflow event system."""

from ideaflow.events.bus import EventBus
from ideaflow.events.types import EventType

__all__ = ["EventBus", "EventType"]
