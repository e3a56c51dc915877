"""Paginated, window-bounded retrieval of commits, pull requests, and issues."""
