"""
service.py — Cache-or-fetch orchestration between the Entry Store and the GitHub client.

Flow for a profile view:
  1. Look up the aggregate in the EntryStore (key: username, or username:auth
     when the signed-in user views their own profile)
  2. On miss, fetch stats upstream and cache them
  3. Submit a detached commit backfill; its only effect is a later
     set_commits, visible to subsequent fun-stats / repo-stats reads
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import urlencode

from config import (
    AUTH_CACHE_SUFFIX,
    BACKFILL_WORKERS,
    GITHUB_AUTHORIZE_URL,
    GITHUB_CLIENT_ID,
    GITHUB_OAUTH_SCOPES,
    GITHUB_REDIRECT_URL,
)
from core.analyzer import (
    compute_fun_stats,
    compute_repo_stats,
    filter_repositories,
    filter_stats_by_language,
)
from core.cache import EntryStore
from core.exceptions import GitHubAPIError, GitHubAuthError, GitHubNotFoundError
from core.github_client import GitHubClient
from core.models import Session

logger = logging.getLogger(__name__)

class StatsService:
    """
    Request-facing facade. Every method is safe to call from many threads.

    Args:
        store:  the process-wide EntryStore
        client: client used for anonymous requests; sessions get their own
                via `client.with_token`
    """

    def __init__(self, store: EntryStore, client: GitHubClient, backfill_workers: int = BACKFILL_WORKERS):
        self.store = store
        self.client = client
        self._backfill = ThreadPoolExecutor(
            max_workers=backfill_workers, thread_name_prefix="commit-backfill"
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _session(self, session_id: str | None) -> Session | None:
        return self.store.get_session(session_id) if session_id else None

    def _client_for(self, session: Session | None) -> GitHubClient:
        if session is not None and session.access_token:
            return self.client.with_token(session.access_token)
        return self.client

    @staticmethod
    def _is_own_profile(username: str, session: Session | None) -> bool:
        return session is not None and session.username.lower() == username.lower()

    def cache_key(self, username: str, session_id: str | None = None) -> str:
        if self._is_own_profile(username, self._session(session_id)):
            return f"{username}{AUTH_CACHE_SUFFIX}"
        return username

    # ── Stats ─────────────────────────────────────────────────────────────────

    def get_user_stats(self, username: str, session_id: str | None = None, language: str = "") -> dict:
        """
        Cached stats for `username`, fetching them on a miss.

        Raises:
            GitHubNotFoundError, GitHubRateLimitError, GitHubAuthError,
            GitHubTransientError, GitHubInvalidPayloadError
        """
        session = self._session(session_id)
        own = self._is_own_profile(username, session)
        key = f"{username}{AUTH_CACHE_SUFFIX}" if own else username

        stats = self.store.get_stats(key)
        if stats is None:
            client = self._client_for(session)
            stats = client.fetch_stats(username, visibility="all" if own else "public")
            self.store.set_stats(key, stats)
            self._backfill.submit(self._backfill_commits, client, username, key, stats["repositories"])

        if language:
            stats = filter_stats_by_language(stats, language)
        return stats

    def _backfill_commits(self, client: GitHubClient, username: str, key: str, repos: list[dict]) -> None:
        try:
            commits = client.fetch_all_commits(username, repos)
        except GitHubAPIError as exc:
            logger.warning(f"Failed to fetch commits for {username}: {exc}")
            return
        except Exception:
            logger.exception(f"Commit backfill crashed for {username}")
            return
        self.store.set_commits(key, commits)
        logger.info(f"Fetched {len(commits)} commits for {username}")

    def get_repositories(self, username: str, query: str = "", session_id: str | None = None) -> list[dict] | None:
        """Cached repositories matching `query`; None when stats are not cached yet."""
        stats = self.store.get_stats(self.cache_key(username, session_id))
        if stats is None:
            return None
        return filter_repositories(stats["repositories"], query)

    def get_fun_stats(self, username: str, session_id: str | None = None) -> dict | None:
        """
        Fun stats from whatever commits are cached so far. None when the
        stats themselves are not cached; zero-commit stats while the backfill
        is still running.
        """
        key = self.cache_key(username, session_id)
        stats = self.store.get_stats(key)
        if stats is None:
            return None
        commits = self.store.get_commits(key) or []
        return compute_fun_stats(commits, total_repositories=len(stats["repositories"]))

    def get_repo_stats(self, username: str, repo_name: str, session_id: str | None = None) -> dict | None:
        """
        Commit breakdown for one cached repository. None when stats are not cached.

        Raises:
            GitHubNotFoundError: the repository is not among the cached ones
        """
        key = self.cache_key(username, session_id)
        stats = self.store.get_stats(key)
        if stats is None:
            return None
        repo = next(
            (r for r in stats["repositories"] if r["name"].lower() == repo_name.lower()),
            None,
        )
        if repo is None:
            raise GitHubNotFoundError(f"Repository not found: {username}/{repo_name}")
        return compute_repo_stats(repo, self.store.get_commits(key) or [])

    # ── People ────────────────────────────────────────────────────────────────

    def search_users(self, query: str, session_id: str | None = None) -> list[dict]:
        return self._client_for(self._session(session_id)).search_users(query)

    def get_followers(self, username: str, session_id: str | None = None) -> list[dict]:
        return self._client_for(self._session(session_id)).fetch_followers(username)

    def get_following(self, username: str, session_id: str | None = None) -> list[dict]:
        return self._client_for(self._session(session_id)).fetch_following(username)

    # ── Login ─────────────────────────────────────────────────────────────────

    def start_login(self) -> tuple[str, str]:
        """Issue an OAuth state token. Returns (state, authorize_url)."""
        state = self.store.create_oauth_state()
        query = urlencode({
            "client_id":    GITHUB_CLIENT_ID,
            "redirect_uri": GITHUB_REDIRECT_URL,
            "scope":        " ".join(GITHUB_OAUTH_SCOPES),
            "state":        state,
        })
        return state, f"{GITHUB_AUTHORIZE_URL}?{query}"

    def complete_login(self, state: str, access_token: str, profile: dict | None = None) -> Session:
        """
        Turn an already-exchanged access token into a session.

        Raises:
            GitHubAuthError: unknown, reused or expired state
        """
        self._consume_state(state)
        return self._open_session(access_token, profile)

    def complete_oauth_callback(self, state: str, code: str) -> Session:
        """
        Finish the redirect leg: check `state` first, then exchange `code`.
        A forged or replayed state never reaches GitHub.

        Raises:
            GitHubAuthError: invalid state, or GitHub rejected the code
        """
        self._consume_state(state)
        return self._open_session(self.client.exchange_code(code))

    def _consume_state(self, state: str) -> None:
        if not self.store.validate_oauth_state(state):
            raise GitHubAuthError("Invalid or expired OAuth state.")

    def _open_session(self, access_token: str, profile: dict | None = None) -> Session:
        if profile is None:
            profile = self.client.with_token(access_token).fetch_profile("")
        session = self.store.create_session(
            profile["login"], access_token, profile.get("avatar_url", "")
        )
        logger.info(f"Signed in: {session.username}")
        return session

    def current_user(self, session_id: str | None) -> Session | None:
        return self._session(session_id)

    def logout(self, session_id: str) -> None:
        self.store.delete_session(session_id)

    def close(self, wait: bool = False) -> None:
        """Stop accepting backfills; `wait` blocks until in-flight ones finish."""
        self._backfill.shutdown(wait=wait)
