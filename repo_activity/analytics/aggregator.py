"""Fold canonical commits, pull requests, and issues into an AnalyticsSnapshot.

Everything here is a pure function of its arguments: inputs are only read,
outputs are freshly built tuples, and the one time-dependent figure (active
contributors) takes the collection instant as a parameter.
"""

from __future__ import annotations

import datetime as dt
import math
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from repo_activity.models import (
    PR_CLOSED,
    PR_MERGED,
    PR_OPEN,
    ActivityTally,
    AnalyticsSnapshot,
    Commit,
    CommitFrequency,
    ContributorPatterns,
    Issue,
    IssueMetrics,
    PullRequest,
    PullRequestBreakdown,
    PullRequestMetrics,
    VelocityPoint,
)
from repo_activity.retrieval.config import (
    ACTIVE_WINDOW_DAYS,
    NEW_CONTRIBUTORS_LIMIT,
    TOP_CONTRIBUTORS_LIMIT,
)

BUCKET_FORMAT = "%Y-%m-%d"


def day_key(ts: dt.datetime) -> str:
    return ts.astimezone(dt.timezone.utc).strftime(BUCKET_FORMAT)


def week_key(ts: dt.datetime) -> str:
    """Monday of the UTC week containing ts."""
    day = ts.astimezone(dt.timezone.utc).date()
    return (day - dt.timedelta(days=day.weekday())).strftime(BUCKET_FORMAT)


def month_key(ts: dt.datetime) -> str:
    return ts.astimezone(dt.timezone.utc).date().replace(day=1).strftime(BUCKET_FORMAT)


def whole_hours(start: dt.datetime, end: dt.datetime) -> int:
    """Elapsed whole hours, truncated toward zero."""
    return int((end - start).total_seconds() / 3600)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def average_hours(spans: Iterable[Tuple[Optional[dt.datetime], Optional[dt.datetime]]]) -> Optional[int]:
    """Rounded mean of whole-hour spans; None when no span has both ends."""
    hours = [whole_hours(start, end) for start, end in spans if start is not None and end is not None]
    if not hours:
        return None
    return round_half_up(sum(hours) / len(hours))


def _histogram(timestamps: Iterable[Optional[dt.datetime]], key_fn) -> Tuple[Tuple[str, int], ...]:
    counts: Dict[str, int] = {}
    for ts in timestamps:
        if ts is None:
            continue
        key = key_fn(ts)
        counts[key] = counts.get(key, 0) + 1
    return tuple(counts.items())


def analyze_commit_frequency(commits: Sequence[Commit]) -> CommitFrequency:
    """Daily, weekly, and monthly commit counts in first-seen bucket order."""
    stamps = [commit.timestamp for commit in commits]
    return CommitFrequency(
        daily=_histogram(stamps, day_key),
        weekly=_histogram(stamps, week_key),
        monthly=_histogram(stamps, month_key),
    )


def analyze_pull_request_metrics(pull_requests: Sequence[PullRequest]) -> PullRequestMetrics:
    states = Counter(pr.state for pr in pull_requests)
    return PullRequestMetrics(
        total=len(pull_requests),
        merged=states.get(PR_MERGED, 0),
        closed=states.get(PR_CLOSED, 0),
        open=states.get(PR_OPEN, 0),
        average_merge_time_hours=average_hours((pr.created_at, pr.merged_at) for pr in pull_requests),
    )


def _bump(table: Dict[str, Dict[str, int]], key: str, field: str) -> None:
    row = table.setdefault(key, {"created": 0, "merged": 0, "reviewed": 0})
    row[field] += 1


def analyze_pull_request_breakdown(pull_requests: Sequence[PullRequest]) -> PullRequestBreakdown:
    """Per-user and per-week created/merged/reviewed tallies, plus weekly velocity.

    A login accumulates across author and reviewer roles.  One PR can land in
    up to three weekly buckets (creation, merge, and each review).
    """
    by_user: Dict[str, Dict[str, int]] = {}
    by_week: Dict[str, Dict[str, int]] = {}
    opened: Counter = Counter()
    closed: Counter = Counter()

    for pr in pull_requests:
        _bump(by_user, pr.author_login, "created")
        if pr.created_at is not None:
            _bump(by_week, week_key(pr.created_at), "created")
            opened[week_key(pr.created_at)] += 1

        if pr.merged_at is not None:
            _bump(by_user, pr.author_login, "merged")
            _bump(by_week, week_key(pr.merged_at), "merged")

        closed_at = pr.merged_at if pr.merged_at is not None else pr.closed_at
        if closed_at is not None:
            closed[week_key(closed_at)] += 1

        for review in pr.reviews:
            _bump(by_user, review.reviewer_login, "reviewed")
            if review.submitted_at is not None:
                _bump(by_week, week_key(review.submitted_at), "reviewed")

    users = [ActivityTally(key=login, **row) for login, row in by_user.items()]
    users.sort(key=lambda tally: tally.total, reverse=True)
    weeks = [ActivityTally(key=week, **row) for week, row in sorted(by_week.items())]
    velocity = [
        VelocityPoint(week=week, opened=opened.get(week, 0), closed=closed.get(week, 0))
        for week in sorted(set(opened) | set(closed))
    ]
    return PullRequestBreakdown(by_user=tuple(users), by_week=tuple(weeks), weekly_velocity=tuple(velocity))


def analyze_issue_metrics(issues: Sequence[Issue]) -> IssueMetrics:
    states = Counter(issue.state for issue in issues)
    return IssueMetrics(
        total=len(issues),
        open=states.get("open", 0),
        closed=states.get("closed", 0),
        average_close_time_hours=average_hours((issue.created_at, issue.closed_at) for issue in issues),
    )


def contribution_counts(commits: Sequence[Commit],
                        pull_requests: Sequence[PullRequest],
                        issues: Sequence[Issue]) -> Dict[str, int]:
    """Total authored records per login, keyed in first-seen order."""
    counts: Dict[str, int] = {}
    for login in [c.author_login for c in commits] + [p.author_login for p in pull_requests] + [
        i.author_login for i in issues
    ]:
        counts[login] = counts.get(login, 0) + 1
    return counts


def analyze_contributor_patterns(commits: Sequence[Commit],
                                 pull_requests: Sequence[PullRequest],
                                 issues: Sequence[Issue],
                                 *,
                                 collected_at: dt.datetime) -> ContributorPatterns:
    """Top, new, and recently active contributors.

    ``new_contributors`` is the first few logins in contribution order, not
    a true first-ever-contribution check (that would need history outside
    the window).
    """
    counts = contribution_counts(commits, pull_requests, issues)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)

    cutoff = collected_at - dt.timedelta(days=ACTIVE_WINDOW_DAYS)
    active: Dict[str, None] = {}
    events: List[Tuple[str, Optional[dt.datetime]]] = (
        [(c.author_login, c.timestamp) for c in commits]
        + [(p.author_login, p.created_at) for p in pull_requests]
        + [(i.author_login, i.created_at) for i in issues]
    )
    for login, when in events:
        if when is not None and when >= cutoff:
            active.setdefault(login, None)

    return ContributorPatterns(
        top_contributors=tuple(ranked[:TOP_CONTRIBUTORS_LIMIT]),
        new_contributors=tuple(list(counts)[:NEW_CONTRIBUTORS_LIMIT]),
        active_contributors=tuple(active),
    )


def analyze_data(commits: Sequence[Commit],
                 pull_requests: Sequence[PullRequest],
                 issues: Sequence[Issue],
                 *,
                 collected_at: dt.datetime) -> AnalyticsSnapshot:
    """Build the full snapshot for one collection run."""
    return AnalyticsSnapshot(
        commit_frequency=analyze_commit_frequency(commits),
        pr_metrics=analyze_pull_request_metrics(pull_requests),
        pr_breakdown=analyze_pull_request_breakdown(pull_requests),
        issue_metrics=analyze_issue_metrics(issues),
        contributor_patterns=analyze_contributor_patterns(
            commits, pull_requests, issues, collected_at=collected_at
        ),
    )


__all__ = [
    "BUCKET_FORMAT",
    "day_key",
    "week_key",
    "month_key",
    "whole_hours",
    "round_half_up",
    "average_hours",
    "analyze_commit_frequency",
    "analyze_pull_request_metrics",
    "analyze_pull_request_breakdown",
    "analyze_issue_metrics",
    "contribution_counts",
    "analyze_contributor_patterns",
    "analyze_data",
]
