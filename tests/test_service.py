"""
tests/test_service.py — Unit tests for StatsService (core/service.py)

A fake GitHub client counts upstream calls; the EntryStore runs on a fake
clock with its reaper disabled.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import threading
from datetime import datetime, timezone

import pytest
from core.cache import EntryStore
from core.exceptions import GitHubAuthError, GitHubNotFoundError, GitHubTransientError
from core.models import Commit
from core.service import StatsService


# ─── Fakes ────────────────────────────────────────────────────────────────────

MOCK_REPOS = [
    {"name": "api", "language": "Go",     "description": "Backend"},
    {"name": "web", "language": "Python", "description": "Frontend"},
]

MOCK_COMMITS = [
    Commit(sha="1", date=datetime(2025, 1, 6, 9, tzinfo=timezone.utc), repo="api"),
    Commit(sha="2", date=datetime(2025, 1, 7, 9, tzinfo=timezone.utc), repo="api"),
    Commit(sha="3", date=datetime(2025, 1, 7, 23, tzinfo=timezone.utc), repo="web"),
]


class FakeClient:
    def __init__(self, token=None, commits=MOCK_COMMITS, commit_error=None):
        self.token = token
        self.commits = commits
        self.commit_error = commit_error
        self.stats_calls: list[tuple[str, str]] = []
        self.children: list["FakeClient"] = []

    def with_token(self, token):
        child = FakeClient(token=token, commits=self.commits, commit_error=self.commit_error)
        self.children.append(child)
        return child

    def fetch_stats(self, username, visibility="public"):
        self.stats_calls.append((username, visibility))
        return {
            "profile":      {"login": username},
            "repositories": list(MOCK_REPOS),
            "streak":       {"current_streak": 0, "longest_streak": 0, "total_contributions": 0},
        }

    def fetch_all_commits(self, username, repos):
        if self.commit_error:
            raise self.commit_error
        return list(self.commits)

    def fetch_profile(self, username):
        return {"login": "octocat", "avatar_url": "https://avatars/octocat"}

    def exchange_code(self, code):
        self.exchanged = getattr(self, "exchanged", []) + [code]
        if code == "bad":
            raise GitHubAuthError("The code passed is incorrect or expired.")
        return f"gho_{code}"

    def search_users(self, query):
        return [{"login": f"{query}-1"}]

    def fetch_followers(self, username):
        return [{"login": "fan", "token": self.token}]

    def fetch_following(self, username):
        return [{"login": "idol"}]


@pytest.fixture
def store(clock):
    s = EntryStore(clock=clock, start_reaper=False)
    yield s
    s.close()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def service(store, client):
    svc = StatsService(store, client)
    yield svc
    svc.close(wait=True)


# ─── Stats ────────────────────────────────────────────────────────────────────

class TestUserStats:
    def test_miss_fetches_and_caches(self, service, client, store):
        stats = service.get_user_stats("octocat")
        assert stats["profile"]["login"] == "octocat"
        assert client.stats_calls == [("octocat", "public")]
        assert store.get_stats("octocat") == stats

    def test_hit_makes_no_upstream_call(self, service, client):
        service.get_user_stats("octocat")
        service.get_user_stats("octocat")
        assert len(client.stats_calls) == 1

    def test_refetch_after_ttl(self, service, client, clock):
        service.get_user_stats("octocat")
        clock.advance(minutes=11)
        service.get_user_stats("octocat")
        assert len(client.stats_calls) == 2

    def test_language_filter(self, service):
        stats = service.get_user_stats("octocat", language="python")
        assert [r["name"] for r in stats["repositories"]] == ["web"]

    def test_upstream_error_propagates_and_caches_nothing(self, store):
        class Failing(FakeClient):
            def fetch_stats(self, username, visibility="public"):
                raise GitHubNotFoundError(username)

        svc = StatsService(store, Failing())
        try:
            with pytest.raises(GitHubNotFoundError):
                svc.get_user_stats("ghost")
            assert store.get_stats("ghost") is None
        finally:
            svc.close(wait=True)

    def test_own_profile_uses_auth_key_and_session_token(self, service, client, store):
        session = store.create_session("OctoCat", "gho_token", "")
        service.get_user_stats("octocat", session_id=session.id)

        assert store.get_stats("octocat:auth") is not None
        assert store.get_stats("octocat") is None
        assert client.children[0].token == "gho_token"
        assert client.children[0].stats_calls == [("octocat", "all")]

    def test_other_profile_with_session_uses_public_key(self, service, store):
        session = store.create_session("someone", "gho_token", "")
        service.get_user_stats("octocat", session_id=session.id)
        assert store.get_stats("octocat") is not None
        assert store.get_stats("octocat:auth") is None


# ─── Backfill ─────────────────────────────────────────────────────────────────

class TestCommitBackfill:
    def test_commits_land_in_store(self, service, store):
        service.get_user_stats("octocat")
        service.close(wait=True)
        assert len(store.get_commits("octocat")) == 3

    def test_failure_is_logged_not_raised(self, store, caplog):
        svc = StatsService(store, FakeClient(commit_error=GitHubTransientError("timeout")))
        stats = svc.get_user_stats("octocat")
        svc.close(wait=True)
        assert stats["profile"]["login"] == "octocat"
        assert store.get_commits("octocat") == []
        assert "Failed to fetch commits for octocat" in caplog.text

    def test_triggering_request_does_not_wait(self, store):
        release = threading.Event()

        class Slow(FakeClient):
            def fetch_all_commits(self, username, repos):
                release.wait(timeout=5)
                return list(MOCK_COMMITS)

        svc = StatsService(store, Slow())
        try:
            svc.get_user_stats("octocat")
            assert store.get_commits("octocat") == []
        finally:
            release.set()
            svc.close(wait=True)
        assert len(store.get_commits("octocat")) == 3


# ─── Derived views ────────────────────────────────────────────────────────────

class TestDerivedViews:
    def test_fun_stats_need_cached_stats(self, service):
        assert service.get_fun_stats("octocat") is None

    def test_fun_stats_after_backfill(self, service):
        service.get_user_stats("octocat")
        service.close(wait=True)
        fun = service.get_fun_stats("octocat")
        assert fun["total_commits"] == 3
        assert fun["total_repositories"] == 2
        assert fun["most_active_repo"] == "api"
        assert fun["longest_coding_streak"] == 2

    def test_repo_stats(self, service):
        service.get_user_stats("octocat")
        service.close(wait=True)
        stats = service.get_repo_stats("octocat", "API")
        assert stats["total_commits"] == 2

    def test_repo_stats_unknown_repo(self, service):
        service.get_user_stats("octocat")
        with pytest.raises(GitHubNotFoundError):
            service.get_repo_stats("octocat", "nope")

    def test_repo_stats_without_cache(self, service):
        assert service.get_repo_stats("octocat", "api") is None

    def test_repositories_query(self, service):
        assert service.get_repositories("octocat") is None
        service.get_user_stats("octocat")
        assert [r["name"] for r in service.get_repositories("octocat", "front")] == ["web"]


# ─── Login ────────────────────────────────────────────────────────────────────

class TestLogin:
    def test_round_trip(self, service):
        state, url = service.start_login()
        assert f"state={state}" in url
        session = service.complete_login(state, "gho_token")
        assert session.username == "octocat"
        assert service.current_user(session.id) == session

        service.logout(session.id)
        assert service.current_user(session.id) is None

    def test_state_is_single_use(self, service):
        state, _ = service.start_login()
        service.complete_login(state, "gho_token", profile={"login": "octocat"})
        with pytest.raises(GitHubAuthError):
            service.complete_login(state, "gho_token", profile={"login": "octocat"})

    def test_unknown_state_rejected(self, service):
        with pytest.raises(GitHubAuthError):
            service.complete_login("forged", "gho_token")

    def test_no_session_id(self, service):
        assert service.current_user(None) is None

    def test_callback_exchanges_code(self, service, client):
        state, _ = service.start_login()
        session = service.complete_oauth_callback(state, "abc")
        assert session.username == "octocat"
        assert session.access_token == "gho_abc"
        assert client.exchanged == ["abc"]
        assert service.current_user(session.id) == session

    def test_callback_with_forged_state_never_exchanges(self, service, client):
        with pytest.raises(GitHubAuthError):
            service.complete_oauth_callback("forged", "abc")
        assert not hasattr(client, "exchanged")

    def test_callback_with_rejected_code(self, service, store):
        state, _ = service.start_login()
        with pytest.raises(GitHubAuthError):
            service.complete_oauth_callback(state, "bad")
        assert store.get_cache_stats()["sessions"] == 0


# ─── People ───────────────────────────────────────────────────────────────────

class TestPeople:
    def test_search(self, service):
        assert service.search_users("octo") == [{"login": "octo-1"}]

    def test_followers_use_session_token(self, service, store):
        session = store.create_session("someone", "gho_token", "")
        assert service.get_followers("octocat", session_id=session.id)[0]["token"] == "gho_token"
        assert service.get_following("octocat")[0]["login"] == "idol"

    def test_anonymous_followers_use_shared_client(self, service):
        assert service.get_followers("octocat")[0]["token"] is None
