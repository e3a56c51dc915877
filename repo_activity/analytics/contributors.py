"""Per-login contributor registry derived from commits, PRs, and issues."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, Optional, Tuple

from repo_activity.models import Commit, Contributor, Issue, PullRequest


def _touch(registry: Dict[str, Dict[str, Any]],
           login: str,
           when: Optional[dt.datetime],
           counter: str,
           name: Optional[str] = None) -> None:
    entry = registry.get(login)
    if entry is None:
        entry = registry[login] = {
            "name": name,
            "commits": 0,
            "pull_requests": 0,
            "issues": 0,
            "first": when,
            "last": when,
        }
    entry[counter] += 1
    if entry["name"] is None and name:
        entry["name"] = name
    if when is None:
        return
    if entry["first"] is None or when < entry["first"]:
        entry["first"] = when
    if entry["last"] is None or when > entry["last"]:
        entry["last"] = when


def roll_up_contributors(commits: Iterable[Commit],
                         pull_requests: Iterable[PullRequest],
                         issues: Iterable[Issue]) -> Tuple[Contributor, ...]:
    """Fold all three record kinds into one Contributor per login.

    Counts are per kind; first/last contribution are the min/max of commit
    dates and PR/issue creation dates.  Logins appear in first-seen order
    (commits, then PRs, then issues).  The registry is rebuilt from scratch
    on every call.
    """
    registry: Dict[str, Dict[str, Any]] = {}
    for commit in commits:
        _touch(registry, commit.author_login, commit.timestamp, "commits", name=commit.author_name)
    for pr in pull_requests:
        _touch(registry, pr.author_login, pr.created_at, "pull_requests")
    for issue in issues:
        _touch(registry, issue.author_login, issue.created_at, "issues")

    return tuple(
        Contributor(
            login=login,
            display_name=entry["name"],
            commit_count=entry["commits"],
            pr_count=entry["pull_requests"],
            issue_count=entry["issues"],
            first_contribution_at=entry["first"],
            last_contribution_at=entry["last"],
        )
        for login, entry in registry.items()
    )


__all__ = ["roll_up_contributors"]
