"""Canonical record shapes and the immutable analytics snapshot.

Every value here is a frozen dataclass holding tuples, so a snapshot handed
to the presentation layer cannot be altered after aggregation.  ``to_dict``
renders the snake_case layout written to the JSON dataset.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from repo_activity.retrieval.window import TimeWindow, format_timestamp

UNKNOWN_LOGIN = "unknown"
UNKNOWN_NAME = "Unknown"

PR_OPEN = "open"
PR_CLOSED = "closed"
PR_MERGED = "merged"

REVIEW_STATES = ("APPROVED", "CHANGES_REQUESTED", "COMMENTED")


def derive_pr_state(merged_at: Optional[dt.datetime], closed_at: Optional[dt.datetime]) -> str:
    """merged iff merged_at, else closed iff closed_at, else open."""
    if merged_at is not None:
        return PR_MERGED
    if closed_at is not None:
        return PR_CLOSED
    return PR_OPEN


@dataclass(frozen=True)
class Commit:
    sha: str
    author_login: str
    author_name: str
    timestamp: Optional[dt.datetime]
    message: str = ""
    files_changed: int = 0
    additions: int = 0
    deletions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sha": self.sha,
            "author": self.author_login,
            "author_name": self.author_name,
            "date": format_timestamp(self.timestamp),
            "message": self.message,
            "files_changed": self.files_changed,
            "additions": self.additions,
            "deletions": self.deletions,
        }


@dataclass(frozen=True)
class Review:
    reviewer_login: str
    state: str
    submitted_at: Optional[dt.datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reviewer": self.reviewer_login,
            "state": self.state,
            "submitted_at": format_timestamp(self.submitted_at),
        }


@dataclass(frozen=True)
class PullRequest:
    number: int
    title: str
    author_login: str
    created_at: Optional[dt.datetime]
    merged_at: Optional[dt.datetime] = None
    closed_at: Optional[dt.datetime] = None
    reviews: Tuple[Review, ...] = ()
    comments_count: int = 0

    @property
    def state(self) -> str:
        return derive_pr_state(self.merged_at, self.closed_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "author": self.author_login,
            "created_at": format_timestamp(self.created_at),
            "merged_at": format_timestamp(self.merged_at),
            "closed_at": format_timestamp(self.closed_at),
            "state": self.state,
            "reviews": [review.to_dict() for review in self.reviews],
            "comments_count": self.comments_count,
        }


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    author_login: str
    created_at: Optional[dt.datetime]
    closed_at: Optional[dt.datetime] = None
    state: str = "open"
    labels: Tuple[str, ...] = ()
    comments_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "author": self.author_login,
            "created_at": format_timestamp(self.created_at),
            "closed_at": format_timestamp(self.closed_at),
            "state": self.state,
            "labels": list(self.labels),
            "comments_count": self.comments_count,
        }


@dataclass(frozen=True)
class Contributor:
    login: str
    display_name: Optional[str]
    commit_count: int
    pr_count: int
    issue_count: int
    first_contribution_at: Optional[dt.datetime]
    last_contribution_at: Optional[dt.datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "login": self.login,
            "name": self.display_name,
            "commits": self.commit_count,
            "pull_requests": self.pr_count,
            "issues": self.issue_count,
            "first_contribution": format_timestamp(self.first_contribution_at),
            "last_contribution": format_timestamp(self.last_contribution_at),
        }


@dataclass(frozen=True)
class CommitFrequency:
    daily: Tuple[Tuple[str, int], ...] = ()
    weekly: Tuple[Tuple[str, int], ...] = ()
    monthly: Tuple[Tuple[str, int], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily": [{"date": key, "count": count} for key, count in self.daily],
            "weekly": [{"week": key, "count": count} for key, count in self.weekly],
            "monthly": [{"month": key, "count": count} for key, count in self.monthly],
        }


@dataclass(frozen=True)
class PullRequestMetrics:
    total: int = 0
    merged: int = 0
    closed: int = 0
    open: int = 0
    average_merge_time_hours: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "merged": self.merged,
            "closed": self.closed,
            "open": self.open,
            "average_merge_time_hours": self.average_merge_time_hours,
        }


@dataclass(frozen=True)
class ActivityTally:
    """created/merged/reviewed counts for one user or one week."""

    key: str
    created: int = 0
    merged: int = 0
    reviewed: int = 0

    @property
    def total(self) -> int:
        return self.created + self.merged + self.reviewed


@dataclass(frozen=True)
class VelocityPoint:
    week: str
    opened: int = 0
    closed: int = 0

    @property
    def net_change(self) -> int:
        return self.opened - self.closed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week": self.week,
            "opened": self.opened,
            "closed": self.closed,
            "net_change": self.net_change,
        }


@dataclass(frozen=True)
class PullRequestBreakdown:
    by_user: Tuple[ActivityTally, ...] = ()
    by_week: Tuple[ActivityTally, ...] = ()
    weekly_velocity: Tuple[VelocityPoint, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "by_user": [
                {"user": t.key, "created": t.created, "merged": t.merged, "reviewed": t.reviewed}
                for t in self.by_user
            ],
            "by_week": [
                {"week": t.key, "created": t.created, "merged": t.merged, "reviewed": t.reviewed}
                for t in self.by_week
            ],
            "weekly_velocity": [point.to_dict() for point in self.weekly_velocity],
        }


@dataclass(frozen=True)
class IssueMetrics:
    total: int = 0
    open: int = 0
    closed: int = 0
    average_close_time_hours: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "open": self.open,
            "closed": self.closed,
            "average_close_time_hours": self.average_close_time_hours,
        }


@dataclass(frozen=True)
class ContributorPatterns:
    top_contributors: Tuple[Tuple[str, int], ...] = ()
    new_contributors: Tuple[str, ...] = ()
    active_contributors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "top_contributors": [
                {"login": login, "contributions": count} for login, count in self.top_contributors
            ],
            "new_contributors": list(self.new_contributors),
            "active_contributors": list(self.active_contributors),
        }


@dataclass(frozen=True)
class AnalyticsSnapshot:
    commit_frequency: CommitFrequency = field(default_factory=CommitFrequency)
    pr_metrics: PullRequestMetrics = field(default_factory=PullRequestMetrics)
    pr_breakdown: PullRequestBreakdown = field(default_factory=PullRequestBreakdown)
    issue_metrics: IssueMetrics = field(default_factory=IssueMetrics)
    contributor_patterns: ContributorPatterns = field(default_factory=ContributorPatterns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commit_frequency": self.commit_frequency.to_dict(),
            "pr_metrics": self.pr_metrics.to_dict(),
            "pr_breakdown": self.pr_breakdown.to_dict(),
            "issue_metrics": self.issue_metrics.to_dict(),
            "contributor_patterns": self.contributor_patterns.to_dict(),
        }


@dataclass(frozen=True)
class RepositoryInfo:
    name: str
    description: Optional[str] = None
    languages: Tuple[str, ...] = ()
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    stars: int = 0
    forks: int = 0


@dataclass(frozen=True)
class RepositoryDataset:
    """Everything one collection run produces, handed downstream as a unit."""

    repository: RepositoryInfo
    window: TimeWindow
    collected_at: dt.datetime
    commits: Tuple[Commit, ...]
    pull_requests: Tuple[PullRequest, ...]
    issues: Tuple[Issue, ...]
    contributors: Tuple[Contributor, ...]
    analytics: AnalyticsSnapshot
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        repo = self.repository
        return {
            "repository": {
                "name": repo.name,
                "metadata": {
                    "description": repo.description,
                    "languages": list(repo.languages),
                    "created_at": format_timestamp(repo.created_at),
                    "updated_at": format_timestamp(repo.updated_at),
                    "stars": repo.stars,
                    "forks": repo.forks,
                },
                "collection_date": format_timestamp(self.collected_at),
                "time_range": self.window.to_dict(),
            },
            "commits": [c.to_dict() for c in self.commits],
            "pull_requests": [pr.to_dict() for pr in self.pull_requests],
            "issues": [i.to_dict() for i in self.issues],
            "contributors": [c.to_dict() for c in self.contributors],
            "analytics": self.analytics.to_dict(),
            "warnings": list(self.warnings),
        }


__all__ = [
    "UNKNOWN_LOGIN",
    "UNKNOWN_NAME",
    "PR_OPEN",
    "PR_CLOSED",
    "PR_MERGED",
    "REVIEW_STATES",
    "derive_pr_state",
    "Commit",
    "Review",
    "PullRequest",
    "Issue",
    "Contributor",
    "CommitFrequency",
    "PullRequestMetrics",
    "ActivityTally",
    "VelocityPoint",
    "PullRequestBreakdown",
    "IssueMetrics",
    "ContributorPatterns",
    "AnalyticsSnapshot",
    "RepositoryInfo",
    "RepositoryDataset",
]
