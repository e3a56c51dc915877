"""Window-bounded collectors for commits, pull requests, and issues.

Each collector walks one listing page by page through a ``PageScanner``,
whose state moves ``fetching -> found_boundary | exhausted``.  The boundary
predicate is evaluated per raw record and is independent of the loop, so
early termination on a descending feed is a property of the predicate, not
of the iteration mechanics.
"""

from __future__ import annotations

import enum
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

from repo_activity.models import Commit, Issue, PullRequest

from .config import (
    KIND_COMMITS,
    KIND_ISSUES,
    KIND_PULL_REQUESTS,
    PAGE_DELAY_SEC,
    PER_PAGE,
    RESOURCE_COMMITS,
    RESOURCE_ISSUES,
    RESOURCE_PULLS,
    REVIEW_DELAY_SEC,
    REVIEW_WORKERS,
)
from .errors import CollectionCancelled
from .normalizers import (
    commit_timestamp_raw,
    is_pull_request_record,
    normalize_commit,
    normalize_issue,
    normalize_pull_request,
    normalize_reviews,
)
from .window import TimeWindow, format_timestamp, parse_timestamp

RawRecord = Dict[str, Any]
BoundaryPredicate = Callable[[RawRecord], bool]


class ActivitySource(Protocol):
    """What the collectors need from a transport."""

    def fetch_page(self, kind: str, params: Mapping[str, Any], page: int,
                   per_page: int = PER_PAGE) -> Tuple[List[RawRecord], bool]:
        ...

    def fetch_reviews(self, number: int) -> List[RawRecord]:
        ...


class CancelToken:
    """Caller-owned cancellation flag with an optional monotonic deadline."""

    def __init__(self, deadline: Optional[float] = None, parent: Optional["CancelToken"] = None) -> None:
        self._event = threading.Event()
        self.deadline = deadline
        self.parent = parent

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "CancelToken":
        if seconds is None or seconds <= 0:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    def child(self) -> "CancelToken":
        """A token that also trips when this one does, but can be cancelled on its own."""
        return CancelToken(parent=self)

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.parent is not None and self.parent.cancelled:
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self) -> None:
        if self.parent is not None:
            self.parent.check()
        if self._event.is_set():
            raise CollectionCancelled("collection cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise CollectionCancelled("collection deadline exceeded")


class Throttle:
    """Enforce a minimum spacing between successive calls to wait()."""

    def __init__(self, interval: float) -> None:
        self.interval = max(0.0, float(interval))
        self._lock = threading.Lock()
        self._last: Optional[float] = None

    def wait(self) -> None:
        if self.interval <= 0:
            return
        with self._lock:
            now = time.monotonic()
            if self._last is not None:
                remaining = self._last + self.interval - now
                if remaining > 0:
                    time.sleep(remaining)
                    now = time.monotonic()
            self._last = now


class PageState(str, enum.Enum):
    FETCHING = "fetching"
    FOUND_BOUNDARY = "found_boundary"
    EXHAUSTED = "exhausted"


def never_past_window(raw: RawRecord) -> bool:
    return False


def updated_before(window: TimeWindow) -> BoundaryPredicate:
    """Boundary for feeds sorted by updated_at descending."""

    def is_past_window(raw: RawRecord) -> bool:
        return window.is_before(parse_timestamp(raw.get("updated_at")))

    return is_past_window


def created_before(window: TimeWindow) -> BoundaryPredicate:
    """Boundary for feeds sorted by created_at descending."""

    def is_past_window(raw: RawRecord) -> bool:
        return window.is_before(parse_timestamp(raw.get("created_at")))

    return is_past_window


class PageScanner:
    """Iterate the raw records of one listing, in fetch order, until a stop rule fires.

    Pages are requested strictly one after another.  Iteration ends when a
    record satisfies ``is_past_window`` (nothing after it is yielded and no
    further page is requested) or when the source reports a terminal page.
    """

    def __init__(self,
                 source: ActivitySource,
                 kind: str,
                 params: Mapping[str, Any],
                 *,
                 is_past_window: BoundaryPredicate = never_past_window,
                 per_page: int = PER_PAGE,
                 throttle: Optional[Throttle] = None,
                 cancel: Optional[CancelToken] = None) -> None:
        self.source = source
        self.kind = kind
        self.params = dict(params)
        self.is_past_window = is_past_window
        self.per_page = per_page
        self.throttle = throttle or Throttle(PAGE_DELAY_SEC)
        self.cancel = cancel or CancelToken()
        self.state = PageState.FETCHING
        self.pages_fetched = 0

    def __iter__(self) -> Iterator[RawRecord]:
        page = 1
        while self.state is PageState.FETCHING:
            self.cancel.check()
            self.throttle.wait()
            records, exhausted = self.source.fetch_page(self.kind, self.params, page, self.per_page)
            self.pages_fetched += 1

            for raw in records:
                if self.is_past_window(raw):
                    self.state = PageState.FOUND_BOUNDARY
                    break
                yield raw

            if self.state is PageState.FETCHING and (
                exhausted or not records or len(records) < self.per_page
            ):
                self.state = PageState.EXHAUSTED
            page += 1


@dataclass(frozen=True)
class CollectionResult:
    """One resource's records plus bookkeeping, owned by its collector until handed off."""

    kind: str
    records: Tuple[Any, ...] = ()
    warnings: Tuple[str, ...] = ()
    pages_fetched: int = 0
    stop_states: Tuple[PageState, ...] = ()


def collect_commits(source: ActivitySource,
                    window: TimeWindow,
                    *,
                    per_page: int = PER_PAGE,
                    page_delay: float = PAGE_DELAY_SEC,
                    cancel: Optional[CancelToken] = None,
                    verbose: bool = False) -> CollectionResult:
    """Return in-window commits, oldest first.

    Bounds are pushed to the source; each timestamp is re-checked locally in
    case the source ignores them.  Commits without a parsable date are dropped.
    """
    params = {"since": format_timestamp(window.since), "until": format_timestamp(window.until)}
    scanner = PageScanner(source, RESOURCE_COMMITS, params, per_page=per_page,
                          throttle=Throttle(page_delay), cancel=cancel)
    commits: List[Commit] = []
    for raw in scanner:
        if not window.contains(parse_timestamp(commit_timestamp_raw(raw))):
            continue
        commits.append(normalize_commit(raw))

    commits.sort(key=lambda c: c.timestamp)
    if verbose:
        print(f"  total commits collected: {len(commits)} ({scanner.pages_fetched} pages)")
    return CollectionResult(
        kind=KIND_COMMITS,
        records=tuple(commits),
        pages_fetched=scanner.pages_fetched,
        stop_states=(scanner.state,),
    )


def collect_issues(source: ActivitySource,
                   window: TimeWindow,
                   *,
                   per_page: int = PER_PAGE,
                   page_delay: float = PAGE_DELAY_SEC,
                   cancel: Optional[CancelToken] = None,
                   verbose: bool = False) -> CollectionResult:
    """Return issues created inside the window, oldest first, excluding pull requests.

    The feed is read newest-update first across all states; the first record
    last updated before ``since`` ends pagination.
    """
    params = {"state": "all", "sort": "updated", "direction": "desc"}
    scanner = PageScanner(source, RESOURCE_ISSUES, params,
                          is_past_window=updated_before(window), per_page=per_page,
                          throttle=Throttle(page_delay), cancel=cancel)
    issues: List[Issue] = []
    for raw in scanner:
        if is_pull_request_record(raw):
            continue
        issue = normalize_issue(raw)
        if window.contains(issue.created_at):
            issues.append(issue)

    issues.sort(key=lambda i: i.created_at)
    if verbose:
        print(f"  total issues collected: {len(issues)} ({scanner.pages_fetched} pages, {scanner.state.value})")
    return CollectionResult(
        kind=KIND_ISSUES,
        records=tuple(issues),
        pages_fetched=scanner.pages_fetched,
        stop_states=(scanner.state,),
    )


def fetch_reviews_for(source: ActivitySource,
                      pull_requests: Sequence[PullRequest],
                      window: TimeWindow,
                      *,
                      workers: int = REVIEW_WORKERS,
                      review_delay: float = REVIEW_DELAY_SEC,
                      cancel: Optional[CancelToken] = None,
                      verbose: bool = False) -> Tuple[List[PullRequest], List[str]]:
    """Attach reviews to every in-window PR using a bounded worker pool.

    A failed fetch leaves that PR with no reviews and adds a warning; it never
    aborts the others.  Cancellation does propagate.  Output keeps input order,
    and warnings come back ordered by PR position rather than in the order the
    [warn] lines were printed.
    """
    cancel = cancel or CancelToken()
    throttle = Throttle(review_delay)
    enriched = list(pull_requests)
    targets = [idx for idx, pr in enumerate(pull_requests) if window.contains(pr.created_at)]
    if not targets:
        return enriched, []
    if verbose:
        print(f"  fetching review data for {len(targets)} PRs in time range...")

    def fetch_one(pr: PullRequest) -> List[RawRecord]:
        cancel.check()
        throttle.wait()
        return source.fetch_reviews(pr.number)

    failures: Dict[int, str] = {}
    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        futures = {executor.submit(fetch_one, pull_requests[idx]): idx for idx in targets}
        for future in as_completed(futures):
            idx = futures[future]
            pr = pull_requests[idx]
            try:
                raw_reviews = future.result()
            except CollectionCancelled:
                for pending in futures:
                    pending.cancel()
                raise
            except Exception as exc:
                print(f"[warn] could not fetch reviews for PR #{pr.number} -> {exc}")
                failures[idx] = f"reviews unavailable for PR #{pr.number}: {exc}"
                continue
            enriched[idx] = replace(pr, reviews=normalize_reviews(raw_reviews))

    return enriched, [failures[idx] for idx in sorted(failures)]


def collect_pull_requests(source: ActivitySource,
                          window: TimeWindow,
                          *,
                          per_page: int = PER_PAGE,
                          page_delay: float = PAGE_DELAY_SEC,
                          review_workers: int = REVIEW_WORKERS,
                          review_delay: float = REVIEW_DELAY_SEC,
                          cancel: Optional[CancelToken] = None,
                          verbose: bool = False) -> CollectionResult:
    """Return PRs created inside the window, oldest first, with their reviews.

    Two passes: closed PRs by update time (stop at the first stale update),
    then open PRs by creation time (stop at the first creation before since).
    """
    cancel = cancel or CancelToken()
    throttle = Throttle(page_delay)
    passes = (
        ({"state": "closed", "sort": "updated", "direction": "desc"}, updated_before(window)),
        ({"state": "open", "sort": "created", "direction": "desc"}, created_before(window)),
    )

    pull_requests: List[PullRequest] = []
    seen: set = set()
    pages_fetched = 0
    stop_states: List[PageState] = []
    for params, boundary in passes:
        scanner = PageScanner(source, RESOURCE_PULLS, params, is_past_window=boundary,
                              per_page=per_page, throttle=throttle, cancel=cancel)
        for raw in scanner:
            pr = normalize_pull_request(raw)
            # a PR closed between the two passes can show up in both
            if not window.contains(pr.created_at) or pr.number in seen:
                continue
            seen.add(pr.number)
            pull_requests.append(pr)
        pages_fetched += scanner.pages_fetched
        stop_states.append(scanner.state)
        if verbose:
            print(f"  {params['state']} PRs: {len(pull_requests)} kept after {scanner.pages_fetched} pages")

    pull_requests, warnings = fetch_reviews_for(
        source,
        pull_requests,
        window,
        workers=review_workers,
        review_delay=review_delay,
        cancel=cancel,
        verbose=verbose,
    )
    pull_requests.sort(key=lambda pr: pr.created_at)
    if verbose:
        print(f"  total pull requests collected: {len(pull_requests)}")
    return CollectionResult(
        kind=KIND_PULL_REQUESTS,
        records=tuple(pull_requests),
        warnings=tuple(warnings),
        pages_fetched=pages_fetched,
        stop_states=tuple(stop_states),
    )


__all__ = [
    "ActivitySource",
    "CancelToken",
    "Throttle",
    "PageState",
    "PageScanner",
    "CollectionResult",
    "never_past_window",
    "updated_before",
    "created_before",
    "collect_commits",
    "collect_issues",
    "collect_pull_requests",
    "fetch_reviews_for",
]
