"""Ideaflow: evaluation workflow engine for submitted ideas."""

__version__ = "0.1.0"
