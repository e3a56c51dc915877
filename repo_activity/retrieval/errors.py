"""Exception taxonomy for window construction and paginated collection."""

from __future__ import annotations

from typing import Any, Dict, Optional


class CollectionError(RuntimeError):
    """Base class for every failure raised by the collection workflow."""

    # kinds that finished before the failure, keyed by kind; set by the runner
    completed: Optional[Dict[str, Any]] = None


class InvalidWindow(CollectionError, ValueError):
    """The requested time window is unparsable or has since > until."""


class SourceError(CollectionError):
    """The source refused a request in a way retrying will not fix."""

    status_code: Optional[int] = None

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class SourceUnauthorized(SourceError):
    status_code = 401


class SourceForbidden(SourceError):
    status_code = 403


class SourceNotFound(SourceError):
    status_code = 404


class PageFetchFailed(CollectionError):
    """A top-level page could not be fetched; the resource is aborted."""

    def __init__(self, message: str, kind: Optional[str] = None, page: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.page = page


class ReviewFetchFailed(CollectionError):
    """Reviews for a single pull request could not be fetched."""

    def __init__(self, message: str, number: Optional[int] = None) -> None:
        super().__init__(message)
        self.number = number


class CollectionCancelled(CollectionError):
    """The caller cancelled the run or its deadline passed."""


__all__ = [
    "CollectionError",
    "InvalidWindow",
    "SourceError",
    "SourceUnauthorized",
    "SourceForbidden",
    "SourceNotFound",
    "PageFetchFailed",
    "ReviewFetchFailed",
    "CollectionCancelled",
]
