"""
ranking.py — Per-country leaderboard cache and the merged global rank index.

Each country moves between three states:
  absent → cached-fresh (fetched < RANKING_TTL ago) → cached-stale

A fresh hit never touches the network. A refresh replaces the country's
entry and rebuilds the global index in the same exclusive section; a failed
refresh falls back to the stale copy when there is one.

Usage:
    from core.ranking import RankingService
    rankings = RankingService()
    ranking = rankings.get_country_ranking("United States")
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

import requests

from config import (
    COUNTRIES_LIST_URL,
    COUNTRIES_TTL,
    GITHUB_REQUEST_TIMEOUT,
    RANKING_BASE_URL,
    RANKING_TTL,
)
from core.exceptions import (
    GitHubInvalidPayloadError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubTransientError,
)
from core.models import CountryRanking, CountryUser, GlobalUser, UserRanking
from utils.rwlock import ReadWriteLock
from utils.utils import is_expired, utc_now

logger = logging.getLogger(__name__)


def normalize_country_name(country: str) -> str:
    """`"United States"`, `"united-states"` and `"UNITED_STATES"` share one key."""
    return country.strip().lower().replace(" ", "_").replace("-", "_")


def _default_http_get(url: str) -> requests.Response:
    return requests.get(url, timeout=GITHUB_REQUEST_TIMEOUT)


class RankingService:
    """
    Cached country leaderboards plus a global index merged from every cached country.

    Args:
        http_get:     fetches a URL and returns a response-like object
                      (`status_code`, `json()`); swap in a stand-in for tests
        clock:        returns the current aware datetime
        auto_refresh: fetch the countries directory in the background at
                      construction and whenever the listing goes stale
    """

    def __init__(
        self,
        http_get: Callable[[str], requests.Response] = _default_http_get,
        clock: Callable[[], datetime] = utc_now,
        ranking_ttl: timedelta = RANKING_TTL,
        auto_refresh: bool = True,
    ):
        self._http_get = http_get
        self._clock = clock
        self._ranking_ttl = ranking_ttl
        self._auto_refresh = auto_refresh
        self._lock = ReadWriteLock()
        self._cache: dict[str, CountryRanking] = {}
        self._global_index: list[GlobalUser] = []
        self._global_map: dict[str, int] = {}
        self._available_countries: list[str] = []
        self._countries_updated_at: datetime | None = None
        self._refresh_lock = threading.Lock()
        if auto_refresh:
            self._spawn_countries_refresh()

    # ── Remote source ─────────────────────────────────────────────────────────

    def _get_json(self, url: str, what: str):
        try:
            response = self._http_get(url)
        except requests.RequestException as exc:
            raise GitHubTransientError(f"Failed to fetch {what}: {exc}") from exc

        if response.status_code == 404:
            raise GitHubNotFoundError(f"{what} not found")
        if response.status_code in (403, 429):
            reset_ts = response.headers.get("X-RateLimit-Reset")
            raise GitHubRateLimitError(reset_timestamp=int(reset_ts) if reset_ts else None)
        if response.status_code != 200:
            raise GitHubTransientError(f"Unexpected status {response.status_code} for {what}")

        try:
            return response.json()
        except ValueError as exc:
            raise GitHubInvalidPayloadError(f"Could not decode {what}: {exc}") from exc

    def _fetch_country_ranking(self, country: str) -> CountryRanking:
        logger.info(f"Fetching ranking for: {country}")
        payload = self._get_json(f"{RANKING_BASE_URL}/{country}.json", f"country {country}")
        if not isinstance(payload, list):
            raise GitHubInvalidPayloadError(f"Ranking for {country} is not a JSON array")
        try:
            users = tuple(CountryUser.from_json(entry) for entry in payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise GitHubInvalidPayloadError(f"Malformed ranking entry for {country}: {exc}") from exc
        return CountryRanking(country=country, users=users, fetched_at=self._clock())

    # ── Country rankings ──────────────────────────────────────────────────────

    def get_country_ranking(self, country: str) -> CountryRanking:
        """
        Return the leaderboard for `country`, refreshing it when older than RANKING_TTL.

        Raises:
            GitHubNotFoundError, GitHubRateLimitError, GitHubTransientError,
            GitHubInvalidPayloadError — only when no cached copy exists
        """
        key = normalize_country_name(country)

        with self._lock.read_locked():
            cached = self._cache.get(key)

        if cached is not None and self._clock() - cached.fetched_at < self._ranking_ttl:
            logger.debug(f"Ranking cache hit for {key}")
            return cached

        try:
            ranking = self._fetch_country_ranking(key)
        except Exception as exc:
            if cached is not None:
                logger.warning(f"Ranking refresh failed for {key}, serving stale copy: {exc}")
                return cached
            raise

        with self._lock.write_locked():
            self._cache[key] = ranking
            self._rebuild_global_index()

        logger.info(f"Cached {len(ranking.users)} users for {key}")
        return ranking

    def _rebuild_global_index(self) -> None:
        """Caller holds the write lock. Rebuilds from every cached country, fresh or stale."""
        all_users = [
            GlobalUser(
                login=user.login,
                country=country,
                public_contributions=user.public_contributions,
            )
            for country, ranking in self._cache.items()
            for user in ranking.users
        ]
        all_users.sort(key=lambda u: u.public_contributions, reverse=True)

        self._global_index = all_users
        self._global_map = {u.login.lower(): i for i, u in reversed(list(enumerate(all_users)))}
        logger.info(f"Global index rebuilt: {len(all_users)} users across {len(self._cache)} countries")

    # ── User lookups ──────────────────────────────────────────────────────────

    def find_user_in_ranking(self, username: str, ranking: CountryRanking) -> UserRanking | None:
        """Locate `username` (case-insensitive) in one country's list."""
        with self._lock.read_locked():
            return self._find_user_locked(username, ranking)

    def _find_user_locked(self, username: str, ranking: CountryRanking) -> UserRanking | None:
        lower = username.lower()
        for i, user in enumerate(ranking.users):
            if user.login.lower() != lower:
                continue
            idx = self._global_map.get(lower)
            return UserRanking(
                username=user.login,
                country=ranking.country,
                country_rank=i + 1,
                country_total=len(ranking.users),
                global_rank=idx + 1 if idx is not None else 0,
                global_total=len(self._global_index),
                public_contributions=user.public_contributions,
                private_contributions=user.private_contributions,
                followers=user.followers,
            )
        return None

    def get_user_ranking(self, username: str, country: str) -> UserRanking | None:
        """Refresh-if-needed the country's leaderboard, then locate `username` in it."""
        ranking = self.get_country_ranking(country)
        return self.find_user_in_ranking(username, ranking)

    def find_user_ranking(self, username: str) -> UserRanking | None:
        """
        Search every cached country. When several countries list the same
        login the match depends on cache iteration order.
        """
        with self._lock.read_locked():
            for ranking in self._cache.values():
                result = self._find_user_locked(username, ranking)
                if result is not None:
                    return result
        return None

    def get_global_ranking(self, limit: int = 0) -> list[GlobalUser]:
        """Top `limit` users of the global index (everything when limit <= 0)."""
        with self._lock.read_locked():
            if limit <= 0 or limit > len(self._global_index):
                limit = len(self._global_index)
            return self._global_index[:limit]

    # ── Countries directory ───────────────────────────────────────────────────

    def get_available_countries(self) -> list[str]:
        """
        Countries from the remote directory listing; the cached country keys
        when the listing has never been fetched.
        """
        with self._lock.read_locked():
            updated_at = self._countries_updated_at
            listing = list(self._available_countries)
            cached = list(self._cache.keys())

        if self._auto_refresh and (
            updated_at is None or is_expired(updated_at, COUNTRIES_TTL, self._clock())
        ):
            self._spawn_countries_refresh()

        return listing if listing else cached

    def refresh_countries_list(self) -> bool:
        """Fetch the directory listing now. Failures are logged, never raised."""
        try:
            contents = self._get_json(COUNTRIES_LIST_URL, "countries list")
            if not isinstance(contents, list):
                raise GitHubInvalidPayloadError("Countries list is not a JSON array")
            countries = sorted(
                entry["name"].removesuffix(".json")
                for entry in contents
                if isinstance(entry, dict) and str(entry.get("name", "")).endswith(".json")
            )
        except Exception as exc:
            logger.warning(f"Failed to refresh countries list: {exc}")
            return False

        with self._lock.write_locked():
            self._available_countries = countries
            self._countries_updated_at = self._clock()
        logger.info(f"Refreshed countries list: {len(countries)} countries available")
        return True

    def _spawn_countries_refresh(self) -> None:
        if not self._refresh_lock.acquire(blocking=False):
            return

        def _run():
            try:
                self.refresh_countries_list()
            finally:
                self._refresh_lock.release()

        threading.Thread(target=_run, name="countries-refresh", daemon=True).start()
