"""REST transport with retry/backoff and token rotation, plus the page source.

``request_with_backoff`` is the only place that talks HTTP.  ``GitHubSource``
builds on it to expose the two capabilities the collectors need: fetch one
page of a repository listing, and fetch the reviews of one pull request.
"""

from __future__ import annotations

import os
import threading
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

import requests

from .config import (
    BACKOFF_BASE_SEC,
    BASE_URL,
    GITHUB_TOKENS,
    MAX_RETRIES,
    MAX_WAIT_ON_403,
    PER_PAGE,
    RATE_LIMIT_TOKEN_RESET_WAIT_SEC,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from .errors import (
    PageFetchFailed,
    ReviewFetchFailed,
    SourceError,
    SourceForbidden,
    SourceNotFound,
    SourceUnauthorized,
)

SESSION = requests.Session()
SESSION.headers.update(
    {
        "Accept": "application/vnd.github.v3+json",
        "User-Agent": USER_AGENT,
    }
)

GITHUB_TOKEN_INDEX = 0
_TOKEN_LOCK = threading.Lock()

TERMINAL_STATUSES = {400, 404, 410, 422}


def sleep_with_jitter(base: float) -> None:
    """Sleep for roughly ``base`` seconds, spread by up to 12.5% either way."""
    jitter = base * 0.25 * (0.5 - (os.urandom(1)[0] / 255.0))
    time.sleep(max(0.0, base + jitter))


def sleep_on_rate_limit(reason: str) -> None:
    """Block until the rate-limit window resets; used once the whole token pool is spent."""
    wait_sec = max(0, RATE_LIMIT_TOKEN_RESET_WAIT_SEC)
    if wait_sec <= 0:
        return
    print(f"[rate-limit] {reason}; sleeping {wait_sec}s")
    time.sleep(wait_sec)


def error_message(resp: requests.Response) -> str:
    """Best-effort extraction of GitHub's error message from a response."""
    try:
        body = resp.json()
    except ValueError:
        body = {"text": (resp.text or "")[:300]}
    if not isinstance(body, dict):
        return str(body)[:300]
    return str(body.get("message") or body.get("error") or body.get("text") or "")


def log_http_error(resp: requests.Response, url: str) -> None:
    """Print the status and GitHub's message for a failed call."""
    print(f"[error] HTTP {resp.status_code} for {url}\n  -> {error_message(resp)}")


def configure_tokens(tokens: List[str]) -> None:
    """Replace the token pool (e.g. with a --token override) and restart rotation."""
    global GITHUB_TOKEN_INDEX
    with _TOKEN_LOCK:
        GITHUB_TOKENS[:] = [t for t in tokens if t]
        GITHUB_TOKEN_INDEX = 0
        _apply_auth_header()


def get_current_token() -> Optional[str]:
    """Token at the rotation index, or None when no token is configured."""
    if not GITHUB_TOKENS:
        return None
    return GITHUB_TOKENS[GITHUB_TOKEN_INDEX % len(GITHUB_TOKENS)] or None


def _apply_auth_header() -> None:
    token = get_current_token()
    if token:
        SESSION.headers["Authorization"] = f"token {token}"
    else:
        SESSION.headers.pop("Authorization", None)


def set_auth_header_for_current_token() -> None:
    """Sync the session Authorization header with the rotation index."""
    with _TOKEN_LOCK:
        _apply_auth_header()


def switch_to_next_token() -> bool:
    """Rotate to the next token; False when there is nothing to rotate to."""
    global GITHUB_TOKEN_INDEX
    with _TOKEN_LOCK:
        if len(GITHUB_TOKENS) <= 1:
            return False
        GITHUB_TOKEN_INDEX = (GITHUB_TOKEN_INDEX + 1) % len(GITHUB_TOKENS)
        _apply_auth_header()
        index = GITHUB_TOKEN_INDEX
    if index == 0:
        print(f"[rate-limit] wrapped to token 1/{len(GITHUB_TOKENS)}")
    else:
        print(f"[rate-limit] switched to token {index + 1}/{len(GITHUB_TOKENS)}")
    return True


def _backoff_delay(attempt: int) -> float:
    return BACKOFF_BASE_SEC * (2 ** (attempt - 1))


def _rate_limit_wait(headers: Mapping[str, Any], attempt: int) -> float:
    """Seconds to wait on a 403/429, from Retry-After, the reset epoch, or backoff."""
    retry_after = headers.get("Retry-After")
    reset = headers.get("X-RateLimit-Reset")
    if retry_after and str(retry_after).isdigit():
        wait_sec = int(retry_after)
    elif reset and str(reset).isdigit():
        wait_sec = max(0, int(reset) - int(time.time())) + 1
    else:
        wait_sec = _backoff_delay(attempt)
    return min(wait_sec, MAX_WAIT_ON_403)


def _is_rate_limited(headers: Mapping[str, Any]) -> bool:
    """Only an exhausted quota counts; GitHub sends X-RateLimit-Reset on every response."""
    return str(headers.get("X-RateLimit-Remaining")) == "0"


def request_with_backoff(method: str, url: str, **kwargs) -> requests.Response:
    """Perform a REST call with retry, exponential backoff, and token cycling.

    Transport exceptions and 5xx responses are retried up to MAX_RETRIES.
    Terminal statuses, a 401 once every token has been refused, and a 403
    that is not a rate limit are returned to the caller unchanged, so status
    mapping stays with the caller.
    """
    if "Authorization" not in SESSION.headers:
        set_auth_header_for_current_token()

    timeout = kwargs.pop("timeout", REQUEST_TIMEOUT)
    last_exc: Optional[Exception] = None
    # set after a rate-limit rotation; a second rate limit at the end of the pool means sleep
    rotated = False
    # token indexes that already answered 401 during this call
    unauthorized = set()

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            resp = SESSION.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            delay = _backoff_delay(attempt)
            print(f"[retry {attempt}/{MAX_RETRIES}] {exc} -> sleep {delay:.1f}s")
            sleep_with_jitter(delay)
            last_exc = exc
            continue

        if 200 <= resp.status_code < 300:
            return resp

        if resp.status_code == 401:
            rotated = False
            unauthorized.add(GITHUB_TOKEN_INDEX)
            if len(unauthorized) < len(GITHUB_TOKENS) and switch_to_next_token():
                continue
            log_http_error(resp, url)
            return resp

        if resp.status_code in (403, 429):
            headers = resp.headers or {}
            if _is_rate_limited(headers):
                token_count = len(GITHUB_TOKENS)
                at_end_of_pool = rotated and GITHUB_TOKEN_INDEX in (0, token_count - 1)
                if token_count <= 1 or at_end_of_pool:
                    sleep_on_rate_limit("rate limit persists across every configured token")
                    rotated = False
                    continue
                if switch_to_next_token():
                    rotated = True
                    continue
            elif resp.status_code == 403 and not headers.get("Retry-After"):
                # plain permission failure, not throttling
                log_http_error(resp, url)
                return resp

            wait_sec = _rate_limit_wait(headers, attempt)
            print(f"[backoff {resp.status_code}] waiting {wait_sec}s for {url}")
            sleep_with_jitter(wait_sec)
            rotated = False
            continue

        if resp.status_code in TERMINAL_STATUSES:
            log_http_error(resp, url)
            return resp

        if attempt < MAX_RETRIES:
            delay = _backoff_delay(attempt)
            print(f"[retry {attempt}/{MAX_RETRIES}] HTTP {resp.status_code} -> sleep {delay:.1f}s")
            sleep_with_jitter(delay)
            continue

        return resp

    if last_exc:
        raise last_exc
    raise RuntimeError(f"Request failed after {MAX_RETRIES} retries: {url}")


def raise_for_source_status(resp: requests.Response, url: str, what: str) -> None:
    """Map a non-2xx response onto the fatal source errors; other codes are left alone."""
    status = resp.status_code
    if status == 401:
        raise SourceUnauthorized(
            f"GitHub token is invalid or has insufficient permissions for {what}", url=url
        )
    if status == 403:
        raise SourceForbidden(
            f"GitHub API rate limit exceeded or insufficient permissions for {what}: "
            f"{error_message(resp)}",
            url=url,
        )
    if status in (404, 410):
        raise SourceNotFound(f"{what} not found or not accessible", url=url)


def has_next_page(resp: requests.Response) -> bool:
    link = (resp.headers or {}).get("Link") or ""
    return 'rel="next"' in link


class GitHubSource:
    """Page-at-a-time access to one repository's REST listings."""

    def __init__(self, owner: str, repo: str, base_url: str = BASE_URL) -> None:
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def _repo_url(self, suffix: str = "") -> str:
        url = f"{self.base_url}/repos/{self.owner}/{self.repo}"
        return f"{url}/{suffix}" if suffix else url

    def _get_json(self, url: str, what: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET url; raises source errors for 401/403/404 and PageFetchFailed otherwise."""
        try:
            resp = request_with_backoff("GET", url, params=params)
        except (requests.RequestException, RuntimeError) as exc:
            raise PageFetchFailed(f"{what}: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise_for_source_status(resp, url, what)
            raise PageFetchFailed(f"{what}: HTTP {resp.status_code} {error_message(resp)}")
        try:
            return resp.json()
        except ValueError as exc:
            raise PageFetchFailed(f"{what}: {exc}") from exc

    def fetch_repository(self) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Return (repository metadata, language byte counts)."""
        what = f"Repository {self.full_name}"
        meta = self._get_json(self._repo_url(), what)
        languages = self._get_json(self._repo_url("languages"), what)
        return meta or {}, languages if isinstance(languages, dict) else {}

    def fetch_page(self,
                   kind: str,
                   params: Mapping[str, Any],
                   page: int,
                   per_page: int = PER_PAGE) -> Tuple[List[Dict[str, Any]], bool]:
        """Fetch one page of a listing; returns (records, exhausted)."""
        url = self._repo_url(kind)
        query = dict(params)
        query.update({"per_page": per_page, "page": page})
        try:
            resp = request_with_backoff("GET", url, params=query)
        except (requests.RequestException, RuntimeError) as exc:
            raise PageFetchFailed(f"{kind} page {page} of {self.full_name}: {exc}", kind=kind, page=page) from exc

        if not 200 <= resp.status_code < 300:
            raise_for_source_status(resp, url, f"{kind} of {self.full_name}")
            raise PageFetchFailed(
                f"{kind} page {page} of {self.full_name}: HTTP {resp.status_code} {error_message(resp)}",
                kind=kind,
                page=page,
            )

        try:
            batch = resp.json()
        except ValueError as exc:
            raise PageFetchFailed(f"{kind} page {page} of {self.full_name}: {exc}", kind=kind, page=page) from exc
        if not isinstance(batch, list):
            raise PageFetchFailed(f"{kind} page {page} of {self.full_name}: expected a list", kind=kind, page=page)
        exhausted = len(batch) < per_page or not has_next_page(resp)
        return batch, exhausted

    def fetch_reviews(self, number: int) -> List[Dict[str, Any]]:
        """Return every review of one pull request; any failure is ReviewFetchFailed."""
        url = self._repo_url(f"pulls/{number}/reviews")
        reviews: List[Dict[str, Any]] = []
        page = 1
        try:
            while True:
                batch = self._get_json(url, f"reviews of #{number}", params={"per_page": PER_PAGE, "page": page})
                if not isinstance(batch, list) or not batch:
                    break
                reviews.extend(batch)
                if len(batch) < PER_PAGE:
                    break
                page += 1
        except (SourceError, PageFetchFailed) as exc:
            raise ReviewFetchFailed(f"reviews of {self.full_name}#{number}: {exc}", number=number) from exc
        return reviews


__all__ = [
    "SESSION",
    "TERMINAL_STATUSES",
    "sleep_with_jitter",
    "sleep_on_rate_limit",
    "error_message",
    "log_http_error",
    "configure_tokens",
    "get_current_token",
    "set_auth_header_for_current_token",
    "switch_to_next_token",
    "request_with_backoff",
    "raise_for_source_status",
    "has_next_page",
    "GitHubSource",
]
