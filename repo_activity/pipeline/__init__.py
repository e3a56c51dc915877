"""Orchestration of a windowed collection run: settings, collection, JSON output."""

from .runner import collect_repository, main, process_repo

__all__ = ["collect_repository", "main", "process_repo"]
