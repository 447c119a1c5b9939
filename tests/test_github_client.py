"""
tests/test_github_client.py — Unit tests for github_client.py

The requests.Session is replaced by a scripted stand-in (no network calls).
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
import requests
from core.exceptions import (
    GitHubAuthError,
    GitHubInvalidPayloadError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubTransientError,
)
from core.github_client import GitHubClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class ScriptedSession:
    """Returns queued responses in order and records (method, url, kwargs)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.headers = {}

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_client(*responses) -> GitHubClient:
    client = GitHubClient(token="ghp_test")
    client.session = ScriptedSession(*responses)
    return client


def raw_commit(sha, date):
    return {
        "sha": sha,
        "html_url": f"https://github.com/u/r/commit/{sha}",
        "commit": {"message": "msg", "author": {"name": "U", "email": "u@x", "date": date}},
    }


# ─── Error mapping ────────────────────────────────────────────────────────────

class TestErrorMapping:
    def test_auth_header_set(self):
        assert GitHubClient(token="ghp_x").session.headers["Authorization"] == "Bearer ghp_x"
        assert "Authorization" not in GitHubClient().session.headers

    @pytest.mark.parametrize("status, exc", [
        (404, GitHubNotFoundError),
        (401, GitHubAuthError),
        (403, GitHubRateLimitError),
        (429, GitHubRateLimitError),
        (500, GitHubTransientError),
    ])
    def test_status_codes(self, status, exc):
        client = make_client(FakeResponse(status))
        with pytest.raises(exc):
            client.fetch_profile("octocat")

    def test_rate_limit_reset_timestamp(self):
        client = make_client(FakeResponse(403, headers={"X-RateLimit-Reset": "1700000000"}))
        with pytest.raises(GitHubRateLimitError) as exc_info:
            client.fetch_profile("octocat")
        assert exc_info.value.reset_timestamp == 1700000000

    def test_timeout_retried_then_transient(self, monkeypatch):
        monkeypatch.setattr("utils.utils.time.sleep", lambda s: None)
        client = make_client(requests.Timeout("slow"), requests.Timeout("slow"))
        with pytest.raises(GitHubTransientError):
            client.fetch_profile("octocat")
        assert len(client.session.calls) == 2

    def test_timeout_then_success(self, monkeypatch):
        monkeypatch.setattr("utils.utils.time.sleep", lambda s: None)
        client = make_client(requests.ConnectionError("reset"), FakeResponse(payload={"login": "octocat"}))
        assert client.fetch_profile("octocat")["login"] == "octocat"

    def test_undecodable_body(self):
        client = make_client(FakeResponse(payload=ValueError("not json")))
        with pytest.raises(GitHubInvalidPayloadError):
            client.fetch_profile("octocat")


# ─── Fetchers ─────────────────────────────────────────────────────────────────

class TestFetchers:
    def test_empty_username_fetches_self(self):
        client = make_client(FakeResponse(payload={"login": "me"}))
        client.fetch_profile("")
        assert client.session.calls[0][1].endswith("/user")

    def test_repositories_skip_forks_and_archived(self):
        client = make_client(FakeResponse(payload=[
            {"name": "keep", "language": "Go", "stargazers_count": 3},
            {"name": "fork", "fork": True},
            {"name": "old", "archived": True},
        ]))
        repos = client.fetch_repositories("octocat")
        assert [r["name"] for r in repos] == ["keep"]
        assert repos[0]["stars"] == 3

    def test_commits_paginate_until_short_page(self):
        first_page = [raw_commit(f"a{i}", "2025-01-06T09:00:00Z") for i in range(100)]
        second_page = [raw_commit("b0", "2025-01-07T09:00:00+02:00")]
        client = make_client(FakeResponse(payload=first_page), FakeResponse(payload=second_page))

        commits = client.fetch_commits("u", "r")

        assert len(commits) == 101
        assert [c[2]["params"]["page"] for c in client.session.calls] == [1, 2]
        assert commits[-1].repo == "r"
        assert commits[-1].date.utcoffset().total_seconds() == 7200

    def test_all_commits_skip_missing_repo_and_sort(self):
        client = make_client(
            FakeResponse(payload=[raw_commit("old", "2025-01-01T00:00:00Z")]),
            FakeResponse(404),
            FakeResponse(payload=[raw_commit("new", "2025-02-01T00:00:00Z")]),
        )
        commits = client.fetch_all_commits("u", [{"name": "a"}, {"name": "gone"}, {"name": "b"}])
        assert [c.sha for c in commits] == ["new", "old"]

    def test_all_commits_abort_on_rate_limit(self):
        client = make_client(FakeResponse(403))
        with pytest.raises(GitHubRateLimitError):
            client.fetch_all_commits("u", [{"name": "a"}, {"name": "b"}])

    def test_contribution_calendar(self):
        payload = {"data": {"user": {"contributionsCollection": {"contributionCalendar": {
            "totalContributions": 7,
            "weeks": [{"contributionDays": [
                {"date": "2025-01-05", "contributionCount": 0, "contributionLevel": "NONE"},
                {"date": "2025-01-06", "contributionCount": 7, "contributionLevel": "FOURTH_QUARTILE"},
            ]}],
        }}}}}
        client = make_client(FakeResponse(payload=payload))
        weeks, total = client.fetch_contribution_calendar("octocat")
        assert total == 7
        assert [(d.date, d.count, d.level) for d in weeks[0]] == [
            ("2025-01-05", 0, 0), ("2025-01-06", 7, 4),
        ]

    def test_contribution_calendar_unknown_user(self):
        client = make_client(FakeResponse(payload={"data": {"user": None}}))
        with pytest.raises(GitHubNotFoundError):
            client.fetch_contribution_calendar("ghost")

    def test_contribution_calendar_malformed(self):
        client = make_client(FakeResponse(payload={"data": {"user": {"contributionsCollection": {}}}}))
        with pytest.raises(GitHubInvalidPayloadError):
            client.fetch_contribution_calendar("octocat")

    def test_search_users(self):
        client = make_client(FakeResponse(payload={"items": [{"login": "octocat"}], "total_count": 1}))
        assert [u["login"] for u in client.search_users("octo")] == ["octocat"]
        assert client.session.calls[0][2]["params"]["q"] == "octo"

    def test_followers_and_following(self):
        client = make_client(
            FakeResponse(payload=[{"login": "fan"}]),
            FakeResponse(payload=[{"login": "idol"}]),
        )
        assert client.fetch_followers("octocat")[0]["login"] == "fan"
        assert client.fetch_following("octocat")[0]["login"] == "idol"
        assert client.session.calls[1][1].endswith("/users/octocat/following")


# ─── GraphQL errors ───────────────────────────────────────────────────────────

class TestGraphQLErrors:
    def test_rate_limited_error_type(self):
        client = make_client(FakeResponse(
            payload={"errors": [{"type": "RATE_LIMITED", "message": "API rate limit exceeded"}]},
            headers={"X-RateLimit-Reset": "1700000000"},
        ))
        with pytest.raises(GitHubRateLimitError) as exc_info:
            client.fetch_contribution_calendar("octocat")
        assert exc_info.value.reset_timestamp == 1700000000

    def test_not_found_error_type(self):
        client = make_client(FakeResponse(payload={"errors": [{"type": "NOT_FOUND", "message": "no user"}]}))
        with pytest.raises(GitHubNotFoundError):
            client.fetch_contribution_calendar("ghost")

    def test_other_error_type_is_invalid(self):
        client = make_client(FakeResponse(payload={"errors": [{"type": "SOMETHING", "message": "odd"}]}))
        with pytest.raises(GitHubInvalidPayloadError):
            client.fetch_contribution_calendar("octocat")


# ─── Transport failures ───────────────────────────────────────────────────────

class TestTransportFailures:
    @pytest.mark.parametrize("exc", [
        requests.exceptions.ChunkedEncodingError("truncated"),
        requests.TooManyRedirects("loop"),
        requests.exceptions.InvalidURL("bad"),
    ])
    def test_non_retried_request_errors_are_transient(self, exc):
        client = make_client(exc)
        with pytest.raises(GitHubTransientError):
            client.fetch_profile("octocat")
        assert len(client.session.calls) == 1


# ─── Aggregate fetch ──────────────────────────────────────────────────────────

CALENDAR_PAYLOAD = {"data": {"user": {"contributionsCollection": {"contributionCalendar": {
    "totalContributions": 3,
    "weeks": [{"contributionDays": [
        {"date": "2025-01-06", "contributionCount": 3, "contributionLevel": "SECOND_QUARTILE"},
    ]}],
}}}}}


class RoutedSession:
    """Answers by endpoint, so concurrent fetches need no fixed order."""

    def __init__(self, colors_response):
        self.colors_response = colors_response
        self.headers = {}
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if url.endswith("/users/octocat"):
            return FakeResponse(payload={"login": "octocat"})
        if url.endswith("/users/octocat/repos"):
            return FakeResponse(payload=[{"name": "api", "language": "Go"}])
        if "contributionsCollection" in kwargs["json"]["query"]:
            return FakeResponse(payload=CALENDAR_PAYLOAD)
        return self.colors_response


class TestFetchStats:
    def test_assembles_aggregate(self):
        client = GitHubClient()
        client.session = RoutedSession(FakeResponse(payload={"data": {"user": {"repositories": {"nodes": [
            {"languages": {"edges": [{"node": {"name": "Go", "color": "#00ADD8"}}]}},
        ]}}}}))
        stats = client.fetch_stats("octocat")
        assert stats["profile"]["login"] == "octocat"
        assert [r["name"] for r in stats["repositories"]] == ["api"]
        assert stats["streak"]["total_contributions"] == 3
        assert stats["languages"] == [{"name": "Go", "percentage": 100, "color": "#00ADD8"}]

    @pytest.mark.parametrize("status", [401, 403, 404, 500])
    def test_colour_failure_falls_back_to_default(self, status):
        client = GitHubClient()
        client.session = RoutedSession(FakeResponse(status))
        stats = client.fetch_stats("octocat")
        assert stats["languages"] == [{"name": "Go", "percentage": 100, "color": "#8b8b8b"}]
        assert stats["streak"]["total_contributions"] == 3


# ─── OAuth ────────────────────────────────────────────────────────────────────

class TestExchangeCode:
    def test_returns_access_token(self):
        client = make_client(FakeResponse(payload={"access_token": "gho_new", "token_type": "bearer"}))
        assert client.exchange_code("abc") == "gho_new"
        method, url, kwargs = client.session.calls[0]
        assert method == "POST"
        assert url.endswith("/login/oauth/access_token")
        assert kwargs["data"]["code"] == "abc"

    def test_rejected_code(self):
        client = make_client(FakeResponse(payload={
            "error": "bad_verification_code",
            "error_description": "The code passed is incorrect or expired.",
        }))
        with pytest.raises(GitHubAuthError, match="incorrect or expired"):
            client.exchange_code("stale")
