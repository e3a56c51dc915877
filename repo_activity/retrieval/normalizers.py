"""Map raw GitHub REST records onto the canonical Commit/PullRequest/Issue shapes."""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

from repo_activity.models import (
    REVIEW_STATES,
    UNKNOWN_LOGIN,
    UNKNOWN_NAME,
    Commit,
    Issue,
    PullRequest,
    RepositoryInfo,
    Review,
)

from .window import parse_timestamp


def login_of(user_obj: Optional[dict]) -> str:
    """Return the login of a GitHub user object, or the "unknown" sentinel."""
    return ((user_obj or {}).get("login")) or UNKNOWN_LOGIN


def as_count(value: Any) -> int:
    """Coerce a numeric stat to int; missing or malformed values count as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def label_name(label: Any) -> str:
    if isinstance(label, str):
        return label
    if isinstance(label, dict):
        return label.get("name") or ""
    return ""


def normalize_labels(labels: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    """Flatten bare strings and label objects into unique names, keeping order."""
    names: List[str] = []
    for label in labels or []:
        name = label_name(label)
        if name and name not in names:
            names.append(name)
    return tuple(names)


def is_pull_request_record(raw: dict) -> bool:
    """The issues listing returns PRs too; they carry a pull_request key."""
    return bool(raw) and raw.get("pull_request") is not None


def commit_timestamp_raw(raw: dict) -> Optional[str]:
    return (((raw.get("commit") or {}).get("author")) or {}).get("date")


def normalize_commit(raw: dict) -> Commit:
    commit_obj = raw.get("commit") or {}
    author_obj = commit_obj.get("author") or {}
    stats = raw.get("stats") or {}
    return Commit(
        sha=raw.get("sha") or "",
        author_login=login_of(raw.get("author")),
        author_name=author_obj.get("name") or UNKNOWN_NAME,
        timestamp=parse_timestamp(author_obj.get("date")),
        message=commit_obj.get("message") or "",
        files_changed=len(raw.get("files") or []),
        additions=as_count(stats.get("additions")),
        deletions=as_count(stats.get("deletions")),
    )


def normalize_reviews(raw_reviews: Optional[Iterable[dict]]) -> Tuple[Review, ...]:
    """Drop dismissed reviews and reviews without a user, keep source order."""
    reviews: List[Review] = []
    for raw in raw_reviews or []:
        if not isinstance(raw, dict):
            continue
        state = (raw.get("state") or "").upper()
        user = raw.get("user")
        if state == "DISMISSED" or not user or not user.get("login"):
            continue
        if state not in REVIEW_STATES:
            continue
        reviews.append(Review(
            reviewer_login=user["login"],
            state=state,
            submitted_at=parse_timestamp(raw.get("submitted_at")),
        ))
    return tuple(reviews)


def normalize_pull_request(raw: dict, reviews: Optional[Iterable[dict]] = None) -> PullRequest:
    comments = as_count(raw.get("comments")) + as_count(raw.get("review_comments"))
    return PullRequest(
        number=as_count(raw.get("number")),
        title=raw.get("title") or "",
        author_login=login_of(raw.get("user")),
        created_at=parse_timestamp(raw.get("created_at")),
        merged_at=parse_timestamp(raw.get("merged_at")),
        closed_at=parse_timestamp(raw.get("closed_at")),
        reviews=normalize_reviews(reviews),
        comments_count=comments,
    )


def normalize_issue(raw: dict) -> Issue:
    closed_at = parse_timestamp(raw.get("closed_at"))
    state = (raw.get("state") or "").lower()
    if state not in ("open", "closed"):
        state = "closed" if closed_at is not None else "open"
    return Issue(
        number=as_count(raw.get("number")),
        title=raw.get("title") or "",
        author_login=login_of(raw.get("user")),
        created_at=parse_timestamp(raw.get("created_at")),
        closed_at=closed_at,
        state=state,
        labels=normalize_labels(raw.get("labels")),
        comments_count=as_count(raw.get("comments")),
    )


def normalize_repository(full_name: str, meta: Optional[dict], languages: Optional[dict]) -> RepositoryInfo:
    meta = meta or {}
    return RepositoryInfo(
        name=meta.get("full_name") or full_name,
        description=meta.get("description"),
        languages=tuple(languages or {}),
        created_at=parse_timestamp(meta.get("created_at")),
        updated_at=parse_timestamp(meta.get("updated_at")),
        stars=as_count(meta.get("stargazers_count")),
        forks=as_count(meta.get("forks_count")),
    )


__all__ = [
    "normalize_repository",
    "login_of",
    "as_count",
    "label_name",
    "normalize_labels",
    "is_pull_request_record",
    "commit_timestamp_raw",
    "normalize_commit",
    "normalize_reviews",
    "normalize_pull_request",
    "normalize_issue",
]
