"""Central configuration constants for windowed activity retrieval."""

from __future__ import annotations

import os
from typing import List

from repo_activity.secrets import resolve_github_tokens

GITHUB_TOKENS: List[str] = resolve_github_tokens()
USER_AGENT = "repo-activity-analytics/0.1"
BASE_URL = "https://api.github.com"
PER_PAGE = 100
REQUEST_TIMEOUT = 90
MAX_RETRIES = max(6, len(GITHUB_TOKENS) * 2)
BACKOFF_BASE_SEC = 2
MAX_WAIT_ON_403 = int(os.getenv("MAX_WAIT_ON_403", "180"))
RATE_LIMIT_TOKEN_RESET_WAIT_SEC = int(
    os.getenv("RATE_LIMIT_TOKEN_RESET_WAIT_SEC", str(60 * 60))
)
PAGE_DELAY_SEC = float(os.getenv("PAGE_DELAY_SEC", "0.1"))
REVIEW_DELAY_SEC = float(os.getenv("REVIEW_DELAY_SEC", "0.05"))
REVIEW_WORKERS = int(os.getenv("REVIEW_WORKERS", "4"))
DEFAULT_LOOKBACK_DAYS = int(os.getenv("DEFAULT_LOOKBACK_DAYS", "365"))
ACTIVE_WINDOW_DAYS = int(os.getenv("ACTIVE_WINDOW_DAYS", "30"))
TOP_CONTRIBUTORS_LIMIT = int(os.getenv("TOP_CONTRIBUTORS_LIMIT", "10"))
NEW_CONTRIBUTORS_LIMIT = int(os.getenv("NEW_CONTRIBUTORS_LIMIT", "5"))
DEFAULT_OUTPUT = "./repo-data.json"

# source resource paths under /repos/{owner}/{repo}/
RESOURCE_COMMITS = "commits"
RESOURCE_PULLS = "pulls"
RESOURCE_ISSUES = "issues"

# activity kinds a run may include
KIND_COMMITS = "commits"
KIND_PULL_REQUESTS = "pull_requests"
KIND_ISSUES = "issues"
ALL_KINDS = (KIND_COMMITS, KIND_PULL_REQUESTS, KIND_ISSUES)

__all__ = [
    "GITHUB_TOKENS",
    "USER_AGENT",
    "BASE_URL",
    "PER_PAGE",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "BACKOFF_BASE_SEC",
    "MAX_WAIT_ON_403",
    "RATE_LIMIT_TOKEN_RESET_WAIT_SEC",
    "PAGE_DELAY_SEC",
    "REVIEW_DELAY_SEC",
    "REVIEW_WORKERS",
    "DEFAULT_LOOKBACK_DAYS",
    "ACTIVE_WINDOW_DAYS",
    "TOP_CONTRIBUTORS_LIMIT",
    "NEW_CONTRIBUTORS_LIMIT",
    "DEFAULT_OUTPUT",
    "RESOURCE_COMMITS",
    "RESOURCE_PULLS",
    "RESOURCE_ISSUES",
    "KIND_COMMITS",
    "KIND_PULL_REQUESTS",
    "KIND_ISSUES",
    "ALL_KINDS",
]
