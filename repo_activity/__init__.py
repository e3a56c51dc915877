"""Windowed GitHub activity collection and aggregate analytics."""

__version__ = "0.1.0"
