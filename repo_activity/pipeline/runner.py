"""Entry points for one windowed collection run."""

from __future__ import annotations

import datetime as dt
import json
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from repo_activity.analytics import analyze_data, roll_up_contributors
from repo_activity.models import RepositoryDataset
from repo_activity.retrieval.collectors import (
    CancelToken,
    CollectionResult,
    collect_commits,
    collect_issues,
    collect_pull_requests,
)
from repo_activity.retrieval.config import (
    ALL_KINDS,
    KIND_COMMITS,
    KIND_ISSUES,
    KIND_PULL_REQUESTS,
    PAGE_DELAY_SEC,
    REVIEW_DELAY_SEC,
    REVIEW_WORKERS,
)
from repo_activity.retrieval.errors import CollectionCancelled, CollectionError
from repo_activity.retrieval.http_client import GitHubSource, configure_tokens, get_current_token
from repo_activity.retrieval.normalizers import normalize_repository
from repo_activity.retrieval.window import TimeWindow, build_window, utc_now

from .config import CollectionSettings, parse_args, resolve_settings


def ensure_dir(path: str | Path) -> None:
    """Create output directories as-needed without raising for existing folders."""
    if path:
        os.makedirs(path, exist_ok=True)


def save_json(path: str | Path, data: Any) -> None:
    """Write JSON to disk using UTF-8 and deterministic formatting."""
    ensure_dir(os.path.dirname(os.fspath(path)))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def collect_resources(source,
                      window: TimeWindow,
                      include: Sequence[str] = ALL_KINDS,
                      *,
                      cancel: Optional[CancelToken] = None,
                      verbose: bool = False,
                      review_workers: int = REVIEW_WORKERS,
                      page_delay: float = PAGE_DELAY_SEC,
                      review_delay: float = REVIEW_DELAY_SEC) -> Dict[str, CollectionResult]:
    """Collect the requested kinds concurrently, one worker and accumulator per kind.

    A failing kind does not stop the others.  Once every worker is done the
    first failure is re-raised with the finished kinds attached as
    ``exc.completed``, so the caller decides whether to keep them.
    Cancellation discards everything: the ``CollectionCancelled`` is raised
    without any completed results.
    """
    cancel = cancel or CancelToken()
    jobs: Dict[str, Callable[[], CollectionResult]] = {
        KIND_COMMITS: lambda: collect_commits(
            source, window, page_delay=page_delay, cancel=cancel, verbose=verbose
        ),
        KIND_PULL_REQUESTS: lambda: collect_pull_requests(
            source,
            window,
            page_delay=page_delay,
            review_workers=review_workers,
            review_delay=review_delay,
            cancel=cancel,
            verbose=verbose,
        ),
        KIND_ISSUES: lambda: collect_issues(
            source, window, page_delay=page_delay, cancel=cancel, verbose=verbose
        ),
    }
    kinds = [kind for kind in ALL_KINDS if kind in include]
    if not kinds:
        return {}

    results: Dict[str, CollectionResult] = {}
    failures: Dict[str, BaseException] = {}
    with ThreadPoolExecutor(max_workers=len(kinds)) as executor:
        futures = {executor.submit(jobs[kind]): kind for kind in kinds}
        for future in as_completed(futures):
            kind = futures[future]
            try:
                results[kind] = future.result()
            except CollectionCancelled as exc:
                failures[kind] = exc
            except Exception as exc:
                print(f"[error] collecting {kind} failed -> {exc}")
                failures[kind] = exc

    cancelled = [exc for exc in failures.values() if isinstance(exc, CollectionCancelled)]
    if cancelled:
        raise cancelled[0]
    if failures:
        root = failures[next(kind for kind in kinds if kind in failures)]
        if isinstance(root, CollectionError):
            root.completed = {kind: results[kind] for kind in kinds if kind in results}
        raise root
    return results


def build_dataset(repository,
                  window: TimeWindow,
                  results: Dict[str, CollectionResult],
                  *,
                  collected_at: dt.datetime) -> RepositoryDataset:
    """Aggregate fully collected results into the immutable dataset."""
    empty = CollectionResult(kind="")
    commits = results.get(KIND_COMMITS, empty).records
    pull_requests = results.get(KIND_PULL_REQUESTS, empty).records
    issues = results.get(KIND_ISSUES, empty).records
    warnings: List[str] = []
    for kind in ALL_KINDS:
        warnings.extend(results.get(kind, empty).warnings)

    return RepositoryDataset(
        repository=repository,
        window=window,
        collected_at=collected_at,
        commits=commits,
        pull_requests=pull_requests,
        issues=issues,
        contributors=roll_up_contributors(commits, pull_requests, issues),
        analytics=analyze_data(commits, pull_requests, issues, collected_at=collected_at),
        warnings=tuple(warnings),
    )


def collect_repository(source,
                       window: TimeWindow,
                       include: Sequence[str] = ALL_KINDS,
                       *,
                       cancel: Optional[CancelToken] = None,
                       verbose: bool = False,
                       review_workers: int = REVIEW_WORKERS,
                       page_delay: float = PAGE_DELAY_SEC,
                       review_delay: float = REVIEW_DELAY_SEC,
                       collected_at: Optional[dt.datetime] = None) -> RepositoryDataset:
    """Fetch metadata, collect every requested kind, and aggregate."""
    collected_at = collected_at or utc_now()
    if cancel is not None:
        cancel.check()
    meta, languages = source.fetch_repository()
    repository = normalize_repository(source.full_name, meta, languages)
    if verbose:
        print(f"  repository: {repository.name} ({repository.stars} stars, {repository.forks} forks)")

    results = collect_resources(
        source,
        window,
        include,
        cancel=cancel,
        verbose=verbose,
        review_workers=review_workers,
        page_delay=page_delay,
        review_delay=review_delay,
    )
    if verbose:
        print("  generating analytics...")
    return build_dataset(repository, window, results, collected_at=collected_at)


def process_repo(settings: CollectionSettings) -> RepositoryDataset:
    """Run the collection for one repository and persist the JSON dataset."""
    window = build_window(settings.since, settings.until)
    if settings.token:
        configure_tokens([settings.token])
    if not get_current_token():
        print("[info] no GitHub token configured; using unauthenticated requests (60/hour)")

    print(f"\n=== {settings.full_name} ===")
    print(f"  window {window.to_dict()['start']} .. {window.to_dict()['end']}; "
          f"collecting {', '.join(settings.include)}...")
    source = GitHubSource(settings.owner, settings.repo)
    dataset = collect_repository(
        source,
        window,
        settings.include,
        cancel=CancelToken.with_timeout(settings.timeout),
        verbose=settings.verbose,
        review_workers=settings.review_workers,
    )
    save_json(settings.output, dataset.to_dict())

    for warning in dataset.warnings:
        print(f"[warn] {warning}")
    print(f"    DONE -> {settings.output}")
    print(f"    found {len(dataset.commits)} commits, {len(dataset.pull_requests)} PRs, "
          f"{len(dataset.issues)} issues, {len(dataset.contributors)} contributors")
    return dataset


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point; exits 1 on any collection error."""
    settings = resolve_settings(parse_args(argv))
    try:
        process_repo(settings)
    except CollectionError as exc:
        print(f"[error] {settings.full_name}: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main(sys.argv[1:])

