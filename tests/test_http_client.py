"""Unit tests for repo_activity.retrieval.http_client covering retries, token cycling, and page fetches.

Execute with coverage to validate networking helpers:
    pytest tests/test_http_client.py --maxfail=1 -v --cov=repo_activity.retrieval.http_client --cov-report=term-missing
"""

from typing import Any, Dict
from unittest.mock import MagicMock, patch

import pytest
import requests

from repo_activity.retrieval import http_client
from repo_activity.retrieval.errors import (
    PageFetchFailed,
    ReviewFetchFailed,
    SourceForbidden,
    SourceNotFound,
    SourceUnauthorized,
)


def _make_resp(status: int = 200, payload: Any = None, headers: Dict[str, str] | None = None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    if payload is None:
        payload = {}
    resp.json.return_value = payload
    resp.text = str(payload)
    return resp


@pytest.fixture(autouse=True)
def restore_tokens():
    original = http_client.GITHUB_TOKENS[:]
    original_index = http_client.GITHUB_TOKEN_INDEX
    yield
    http_client.GITHUB_TOKENS[:] = original
    http_client.GITHUB_TOKEN_INDEX = original_index
    http_client.set_auth_header_for_current_token()


def test_sleep_with_jitter(monkeypatch):
    called = {}
    monkeypatch.setattr(http_client.time, "sleep", lambda value: called.setdefault("val", value))
    http_client.sleep_with_jitter(1.5)
    assert isinstance(called["val"], float)
    assert 1.5 * 0.87 <= called["val"] <= 1.5 * 1.13


def test_log_http_error_handles_json_and_text(capsys):
    resp = _make_resp(403, {"message": "bad"})
    http_client.log_http_error(resp, "url")
    assert "bad" in capsys.readouterr().out

    resp = _make_resp(429)
    resp.json.side_effect = ValueError()
    resp.text = "plain"
    http_client.log_http_error(resp, "url")
    assert "plain" in capsys.readouterr().out


def test_token_rotation(capsys):
    http_client.configure_tokens(["t1", "t2"])
    assert http_client.SESSION.headers["Authorization"].endswith("t1")

    assert http_client.switch_to_next_token() is True
    assert http_client.GITHUB_TOKEN_INDEX == 1
    assert http_client.SESSION.headers["Authorization"].endswith("t2")

    capsys.readouterr()  # clear output buffer
    http_client.switch_to_next_token()
    assert "wrapped" in capsys.readouterr().out

    http_client.configure_tokens(["solo"])
    assert http_client.switch_to_next_token() is False


def test_configure_tokens_without_token_clears_header():
    http_client.configure_tokens(["t1"])
    http_client.configure_tokens([""])
    assert http_client.get_current_token() is None
    assert "Authorization" not in http_client.SESSION.headers


@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_success(mock_session):
    mock_session.request.return_value = _make_resp(200, {"ok": 1})
    resp = http_client.request_with_backoff("GET", "https://api.github.com/x")
    assert resp.status_code == 200
    assert mock_session.request.call_args.kwargs["timeout"] == http_client.REQUEST_TIMEOUT


@patch("repo_activity.retrieval.http_client.sleep_with_jitter", lambda *_: None)
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_retry_on_exception(mock_session):
    mock_session.request.side_effect = [
        requests.RequestException("boom"),
        _make_resp(200, {"ok": 1}),
    ]
    resp = http_client.request_with_backoff("GET", "url")
    assert resp.status_code == 200


@patch("repo_activity.retrieval.http_client.sleep_with_jitter", lambda *_: None)
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_retries_server_errors(mock_session):
    mock_session.request.side_effect = [_make_resp(502), _make_resp(200, {"ok": 1})]
    resp = http_client.request_with_backoff("GET", "url")
    assert resp.status_code == 200
    assert mock_session.request.call_count == 2


@patch("repo_activity.retrieval.http_client.sleep_with_jitter", lambda *_: None)
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_raises_last_exception_after_retries(mock_session):
    mock_session.request.side_effect = requests.ConnectionError("down")
    with pytest.raises(requests.ConnectionError):
        http_client.request_with_backoff("GET", "url")
    assert mock_session.request.call_count == http_client.MAX_RETRIES


@patch("repo_activity.retrieval.http_client.sleep_with_jitter", lambda *_: None)
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_rate_limit_switch_token(mock_session):
    http_client.GITHUB_TOKENS[:] = ["t1", "t2"]
    http_client.GITHUB_TOKEN_INDEX = 0
    r1 = _make_resp(403, {"message": ""}, headers={"X-RateLimit-Remaining": "0"})
    r2 = _make_resp(200, {"ok": True})
    mock_session.request.side_effect = [r1, r2]
    resp = http_client.request_with_backoff("GET", "url")
    assert resp.status_code == 200
    assert http_client.GITHUB_TOKEN_INDEX == 1


@patch("repo_activity.retrieval.http_client.sleep_on_rate_limit")
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_rate_limit_single_token_sleeps(mock_session, mock_sleep):
    http_client.GITHUB_TOKENS[:] = ["only"]
    http_client.GITHUB_TOKEN_INDEX = 0
    limited = _make_resp(429, {}, headers={"X-RateLimit-Remaining": "0"})
    mock_session.request.side_effect = [limited, _make_resp(200, {"ok": True})]
    resp = http_client.request_with_backoff("GET", "url")
    assert resp.status_code == 200
    mock_sleep.assert_called_once()


@patch("repo_activity.retrieval.http_client.sleep_with_jitter", lambda *_: None)
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_retry_after_wait(mock_session):
    r1 = _make_resp(403, {"message": ""}, headers={"Retry-After": "1"})
    r2 = _make_resp(200, {"ok": True})
    mock_session.request.side_effect = [r1, r2]
    resp = http_client.request_with_backoff("GET", "url")
    assert resp.status_code == 200


@patch("repo_activity.retrieval.http_client.log_http_error")
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_plain_forbidden_is_not_retried(mock_session, mock_log):
    resp = _make_resp(403, {"message": "Resource not accessible"})
    mock_session.request.return_value = resp
    assert http_client.request_with_backoff("GET", "url") is resp
    assert mock_session.request.call_count == 1
    mock_log.assert_called_once()


@patch("repo_activity.retrieval.http_client.log_http_error")
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_unauthorized_single_token_returns_resp(mock_session, mock_log):
    http_client.GITHUB_TOKENS[:] = ["bad"]
    resp = _make_resp(401, {"message": "Bad credentials"})
    mock_session.request.return_value = resp
    assert http_client.request_with_backoff("GET", "url") is resp
    mock_log.assert_called_once()


@patch("repo_activity.retrieval.http_client.log_http_error")
@patch("repo_activity.retrieval.http_client.SESSION")
def test_request_terminal_error_returns_resp(mock_session, mock_log):
    resp = _make_resp(404, {})
    mock_session.request.return_value = resp
    result = http_client.request_with_backoff("GET", "url")
    assert result is resp
    mock_log.assert_called_once()


def test_rate_limit_wait_prefers_retry_after(monkeypatch):
    assert http_client._rate_limit_wait({"Retry-After": "7"}, 1) == 7
    monkeypatch.setattr(http_client.time, "time", lambda: 1000)
    assert http_client._rate_limit_wait({"X-RateLimit-Reset": "1010"}, 1) == 11
    assert http_client._rate_limit_wait({"Retry-After": "99999"}, 1) == http_client.MAX_WAIT_ON_403


@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_page_sends_paging_params_and_follows_link(mock_request):
    mock_request.return_value = _make_resp(
        200,
        [{"id": 1}, {"id": 2}],
        headers={"Link": '<https://api.github.com/repos/o/r/issues?page=2>; rel="next"'},
    )
    source = http_client.GitHubSource("o", "r")
    batch, exhausted = source.fetch_page("issues", {"state": "all"}, 1, per_page=2)
    assert [entry["id"] for entry in batch] == [1, 2]
    assert exhausted is False
    args, kwargs = mock_request.call_args
    assert args == ("GET", "https://api.github.com/repos/o/r/issues")
    assert kwargs["params"] == {"state": "all", "per_page": 2, "page": 1}


@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_page_short_or_unlinked_page_is_exhausted(mock_request):
    source = http_client.GitHubSource("o", "r")
    mock_request.return_value = _make_resp(200, [{"id": 1}], headers={"Link": 'rel="next"'})
    assert source.fetch_page("commits", {}, 3, per_page=2)[1] is True
    mock_request.return_value = _make_resp(200, [{"id": 1}, {"id": 2}])
    assert source.fetch_page("commits", {}, 3, per_page=2)[1] is True


@pytest.mark.parametrize("status, error", [
    (401, SourceUnauthorized),
    (403, SourceForbidden),
    (404, SourceNotFound),
])
@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_page_maps_fatal_statuses(mock_request, status, error):
    mock_request.return_value = _make_resp(status, {"message": "nope"})
    with pytest.raises(error) as excinfo:
        http_client.GitHubSource("o", "r").fetch_page("pulls", {}, 1)
    assert excinfo.value.status_code == status


@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_page_other_failures_are_page_errors(mock_request):
    source = http_client.GitHubSource("o", "r")
    mock_request.return_value = _make_resp(502, {"message": "bad gateway"})
    with pytest.raises(PageFetchFailed) as excinfo:
        source.fetch_page("issues", {}, 4)
    assert (excinfo.value.kind, excinfo.value.page) == ("issues", 4)

    mock_request.side_effect = RuntimeError("Request failed after 6 retries")
    with pytest.raises(PageFetchFailed):
        source.fetch_page("issues", {}, 1)

    mock_request.side_effect = None
    mock_request.return_value = _make_resp(200, {"not": "a list"})
    with pytest.raises(PageFetchFailed):
        source.fetch_page("issues", {}, 1)


@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_repository_returns_meta_and_languages(mock_request):
    mock_request.side_effect = [
        _make_resp(200, {"full_name": "o/r", "stargazers_count": 5}),
        _make_resp(200, {"Python": 900, "Shell": 12}),
    ]
    meta, languages = http_client.GitHubSource("o", "r").fetch_repository()
    assert meta["stargazers_count"] == 5
    assert list(languages) == ["Python", "Shell"]
    assert mock_request.call_args_list[1].args[1].endswith("/repos/o/r/languages")


@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_repository_not_found(mock_request):
    mock_request.return_value = _make_resp(404, {"message": "Not Found"})
    with pytest.raises(SourceNotFound):
        http_client.GitHubSource("o", "missing").fetch_repository()


@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_reviews_pages_until_short_batch(mock_request, monkeypatch):
    monkeypatch.setattr(http_client, "PER_PAGE", 2)
    mock_request.side_effect = [
        _make_resp(200, [{"id": 1}, {"id": 2}]),
        _make_resp(200, [{"id": 3}]),
    ]
    reviews = http_client.GitHubSource("o", "r").fetch_reviews(7)
    assert [r["id"] for r in reviews] == [1, 2, 3]
    assert mock_request.call_args_list[0].args[1].endswith("/pulls/7/reviews")
    assert mock_request.call_args_list[1].kwargs["params"]["page"] == 2


@patch("repo_activity.retrieval.http_client.request_with_backoff")
def test_fetch_reviews_failure_is_review_error(mock_request):
    mock_request.return_value = _make_resp(404, {"message": "Not Found"})
    with pytest.raises(ReviewFetchFailed) as excinfo:
        http_client.GitHubSource("o", "r").fetch_reviews(12)
    assert excinfo.value.number == 12


@patch("repo_activity.retrieval.http_client.sleep_on_rate_limit")
@patch("repo_activity.retrieval.http_client.sleep_with_jitter")
@patch("repo_activity.retrieval.http_client.SESSION")
def test_forbidden_with_quota_left_maps_to_source_forbidden(mock_session, mock_jitter, mock_rate_sleep):
    http_client.GITHUB_TOKENS[:] = ["only"]
    http_client.GITHUB_TOKEN_INDEX = 0
    headers = {"X-RateLimit-Remaining": "4990", "X-RateLimit-Reset": "1900000000"}
    mock_session.request.return_value = _make_resp(403, {"message": "Resource not accessible"}, headers=headers)

    with pytest.raises(SourceForbidden):
        http_client.GitHubSource("o", "r").fetch_page("commits", {}, 1)
    assert mock_session.request.call_count == 1
    mock_rate_sleep.assert_not_called()
    mock_jitter.assert_not_called()


@patch("repo_activity.retrieval.http_client.log_http_error")
@patch("repo_activity.retrieval.http_client.SESSION")
def test_unauthorized_on_every_token_maps_to_source_unauthorized(mock_session, mock_log):
    http_client.configure_tokens(["bad1", "bad2"])
    mock_session.request.return_value = _make_resp(401, {"message": "Bad credentials"})

    with pytest.raises(SourceUnauthorized):
        http_client.GitHubSource("o", "r").fetch_page("commits", {}, 1)
    assert mock_session.request.call_count == 2
    mock_log.assert_called_once()


@patch("repo_activity.retrieval.http_client.SESSION")
def test_unauthorized_token_rotates_to_a_working_one(mock_session):
    http_client.configure_tokens(["bad", "good"])
    mock_session.request.side_effect = [_make_resp(401, {}), _make_resp(200, [])]
    resp = http_client.request_with_backoff("GET", "url")
    assert resp.status_code == 200
    assert http_client.get_current_token() == "good"
