"""Ideaflow core engines."""
