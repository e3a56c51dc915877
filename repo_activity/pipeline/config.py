"""Command-line configuration for a single collection run."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from repo_activity.retrieval.config import (
    ALL_KINDS,
    DEFAULT_OUTPUT,
    KIND_COMMITS,
    KIND_ISSUES,
    KIND_PULL_REQUESTS,
    REVIEW_WORKERS,
)

KIND_ALIASES = {
    "commits": KIND_COMMITS,
    "prs": KIND_PULL_REQUESTS,
    "pulls": KIND_PULL_REQUESTS,
    "pull_requests": KIND_PULL_REQUESTS,
    "issues": KIND_ISSUES,
}


@dataclass(frozen=True)
class CollectionSettings:
    """Resolved runtime settings for one repository collection."""

    owner: str
    repo: str
    since: Optional[str]
    until: Optional[str]
    include: Tuple[str, ...]
    output: Path
    token: Optional[str]
    verbose: bool
    review_workers: int
    timeout: Optional[float]

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def split_repo(value: str) -> Tuple[str, str]:
    """Split ``owner/repo``; anything else is rejected."""
    owner, _, repo = (value or "").strip().partition("/")
    if not owner or not repo or "/" in repo:
        raise ValueError('Repository must be in format "owner/repo"')
    return owner, repo


def parse_include(value: str) -> Tuple[str, ...]:
    """Parse ``commits,prs,issues`` into canonical kinds, preserving ALL_KINDS order."""
    requested = set()
    for item in (value or "").split(","):
        item = item.strip().lower()
        if not item:
            continue
        if item not in KIND_ALIASES:
            raise argparse.ArgumentTypeError(
                f"unknown kind {item!r}; choose from {', '.join(sorted(KIND_ALIASES))}"
            )
        requested.add(KIND_ALIASES[item])
    if not requested:
        raise argparse.ArgumentTypeError("--include needs at least one kind")
    return tuple(kind for kind in ALL_KINDS if kind in requested)


def _repo_arg(value: str) -> str:
    try:
        split_repo(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value.strip()


def build_arg_parser() -> argparse.ArgumentParser:
    """Return the CLI parser used by the collection entry point."""

    parser = argparse.ArgumentParser(
        description="Collect a repository's commits, PRs, and issues for a time window and aggregate them.",
    )
    parser.add_argument("repo", type=_repo_arg, help="repository as owner/repo")
    parser.add_argument("--since", default=None, help="window start (ISO-8601); default one year ago")
    parser.add_argument("--until", default=None, help="window end (ISO-8601); default now")
    parser.add_argument("--include", type=parse_include, default=ALL_KINDS,
                        help="comma-separated kinds: commits,prs,issues")
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help="JSON output path")
    parser.add_argument("--token", default=None, help="GitHub token (overrides local secrets)")
    parser.add_argument("--review-workers", type=int, default=REVIEW_WORKERS)
    parser.add_argument("--timeout", type=float, default=None,
                        help="abort the whole run after this many seconds")
    parser.add_argument("--verbose", action="store_true")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments; accepts argv overrides for testing."""

    parser = build_arg_parser()
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> CollectionSettings:
    """Return immutable settings from parsed arguments."""

    owner, repo = split_repo(args.repo)
    return CollectionSettings(
        owner=owner,
        repo=repo,
        since=args.since,
        until=args.until,
        include=tuple(args.include),
        output=Path(args.output),
        token=args.token,
        verbose=bool(args.verbose),
        review_workers=max(1, int(args.review_workers)),
        timeout=args.timeout,
    )


__all__ = [
    "KIND_ALIASES",
    "CollectionSettings",
    "split_repo",
    "parse_include",
    "build_arg_parser",
    "parse_args",
    "resolve_settings",
]
