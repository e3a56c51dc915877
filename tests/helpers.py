"""Raw GitHub-shaped record builders and an in-memory page source for tests."""

from typing import Any, Dict, List, Optional, Tuple


def raw_commit(sha: str, login: Optional[str], date: Optional[str], name: Optional[str] = "Dev",
               files: int = 0, stats: Optional[dict] = None) -> Dict[str, Any]:
    return {
        "sha": sha,
        "author": {"login": login} if login else None,
        "commit": {"author": {"name": name, "date": date}, "message": f"commit {sha}"},
        "files": [{"filename": f"f{i}.py"} for i in range(files)],
        "stats": stats or {},
    }


def raw_issue(number: int, login: Optional[str], created: str, updated: Optional[str] = None,
              closed: Optional[str] = None, is_pr: bool = False, labels=()) -> Dict[str, Any]:
    record = {
        "number": number,
        "title": f"issue {number}",
        "user": {"login": login} if login else None,
        "created_at": created,
        "updated_at": updated or created,
        "closed_at": closed,
        "state": "closed" if closed else "open",
        "labels": list(labels),
        "comments": 2,
    }
    if is_pr:
        record["pull_request"] = {"url": f"https://api.github.com/pulls/{number}"}
    return record


def raw_pull(number: int, login: Optional[str], created: str, updated: Optional[str] = None,
             merged: Optional[str] = None, closed: Optional[str] = None) -> Dict[str, Any]:
    return {
        "number": number,
        "title": f"pr {number}",
        "user": {"login": login} if login else None,
        "created_at": created,
        "updated_at": updated or closed or merged or created,
        "merged_at": merged,
        "closed_at": closed or merged,
        "state": "closed" if (closed or merged) else "open",
    }


def raw_review(login: Optional[str], state: str, submitted: Optional[str]) -> Dict[str, Any]:
    return {"user": {"login": login} if login else None, "state": state, "submitted_at": submitted}


class FakeSource:
    """Serves canned pages keyed by (resource, state) and records every request."""

    def __init__(self,
                 pages: Optional[Dict[Tuple[str, Optional[str]], List[List[dict]]]] = None,
                 reviews: Optional[Dict[int, Any]] = None,
                 page_errors: Optional[Dict[Tuple[str, Optional[str], int], Exception]] = None,
                 meta: Optional[dict] = None,
                 languages: Optional[dict] = None,
                 full_name: str = "octo/repo") -> None:
        self.pages = pages or {}
        self.reviews = reviews or {}
        self.page_errors = page_errors or {}
        self.meta = meta if meta is not None else {"full_name": full_name, "stargazers_count": 3}
        self.languages = languages if languages is not None else {"Python": 100}
        self.full_name = full_name
        self.calls: List[Tuple[str, Dict[str, Any], int]] = []
        self.review_calls: List[int] = []

    @staticmethod
    def _key(kind: str, params) -> Tuple[str, Optional[str]]:
        return kind, params.get("state") if kind == "pulls" else None

    def pages_requested(self, kind: str, state: Optional[str] = None) -> List[int]:
        return [page for k, params, page in self.calls
                if k == kind and (state is None or params.get("state") == state)]

    def fetch_repository(self):
        return self.meta, self.languages

    def fetch_page(self, kind, params, page, per_page=100):
        self.calls.append((kind, dict(params), page))
        key = self._key(kind, params)
        error = self.page_errors.get((key[0], key[1], page))
        if error is not None:
            raise error
        pages = self.pages.get(key, [])
        records = pages[page - 1] if page <= len(pages) else []
        return [dict(r) for r in records], page >= len(pages)

    def fetch_reviews(self, number):
        self.review_calls.append(number)
        outcome = self.reviews.get(number, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
