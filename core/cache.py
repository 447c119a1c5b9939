"""
cache.py — In-memory Entry Store for aggregated user data, OAuth state and sessions.

Three maps behind one reader/writer lock:
  1. users:    cache key → CachedUserEntry (stats + commits + updated_at)
  2. states:   OAuth anti-forgery token → creation time
  3. sessions: session id → Session

Reads share the lock; every mutation (set/delete/reap) takes it exclusively
for the map update only. Expiry is lazy on read and eager in the reaper.

Usage:
    from core.cache import EntryStore
    store = EntryStore()
    store.set_stats("octocat", stats)
"""

import copy
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from config import (
    OAUTH_STATE_BYTES,
    OAUTH_STATE_TTL,
    REAPER_INTERVAL,
    SESSION_ID_BYTES,
    SESSION_TTL,
    STATS_CACHE_TTL,
)
from core.models import Commit, Session
from utils.rwlock import ReadWriteLock
from utils.utils import is_expired, utc_now

logger = logging.getLogger(__name__)


@dataclass
class CachedUserEntry:
    updated_at: datetime
    stats: dict | None = None
    commits: list[Commit] = field(default_factory=list)


class EntryStore:
    """
    Process-lifetime cache shielding the upstream API from repeated requests.

    Args:
        clock:        returns the current aware datetime (inject a fake in tests)
        stats_ttl:    freshness window for cached aggregates
        start_reaper: start the background sweep thread at construction
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        stats_ttl: timedelta = STATS_CACHE_TTL,
        reaper_interval: timedelta = REAPER_INTERVAL,
        start_reaper: bool = True,
    ):
        self._clock = clock
        self._stats_ttl = stats_ttl
        self._reaper_interval = reaper_interval
        self._lock = ReadWriteLock()
        self._users: dict[str, CachedUserEntry] = {}
        self._states: dict[str, datetime] = {}
        self._sessions: dict[str, Session] = {}
        self._stop = threading.Event()
        self._reaper: threading.Thread | None = None
        if start_reaper:
            self._reaper = threading.Thread(
                target=self._reap_loop, name="entry-store-reaper", daemon=True
            )
            self._reaper.start()

    # ── Aggregated user data ──────────────────────────────────────────────────

    def _fresh_entry(self, key: str) -> CachedUserEntry | None:
        entry = self._users.get(key)
        if entry is None or is_expired(entry.updated_at, self._stats_ttl, self._clock()):
            return None
        return entry

    def get_stats(self, key: str) -> dict | None:
        """Return a copy of the cached stats if present and fresh, else None."""
        with self._lock.read_locked():
            entry = self._fresh_entry(key)
            stats = entry.stats if entry else None
        if stats is None:
            logger.debug(f"Stats cache miss for {key}")
            return None
        logger.debug(f"Stats cache hit for {key}")
        return copy.deepcopy(stats)

    def set_stats(self, key: str, stats: dict) -> None:
        """Insert or overwrite the stats for `key` and mark them fresh."""
        stats = copy.deepcopy(stats)
        now = self._clock()
        with self._lock.write_locked():
            entry = self._users.get(key)
            if entry is None:
                self._users[key] = CachedUserEntry(updated_at=now, stats=stats)
            else:
                entry.stats = stats
                entry.updated_at = now
        logger.info(f"Stats cached for {key}")

    def get_commits(self, key: str) -> list[Commit] | None:
        """Commits gated by the same freshness window as the stats."""
        with self._lock.read_locked():
            entry = self._fresh_entry(key)
            if entry is None:
                return None
            return list(entry.commits)

    def set_commits(self, key: str, commits: list[Commit]) -> None:
        """
        Attach a commit list to `key`. A missing record is created as fresh;
        an existing record keeps its updated_at.
        """
        commits = list(commits)
        now = self._clock()
        with self._lock.write_locked():
            entry = self._users.get(key)
            if entry is None:
                self._users[key] = CachedUserEntry(updated_at=now, commits=commits)
            else:
                entry.commits = commits

    def is_stale(self, key: str, max_age: timedelta) -> bool:
        """True if there are no stats for `key` or they are older than `max_age`."""
        with self._lock.read_locked():
            entry = self._users.get(key)
            if entry is None or entry.stats is None:
                return True
            return is_expired(entry.updated_at, max_age, self._clock())

    def invalidate(self, key: str) -> bool:
        """Drop the record for `key`. Returns True if one was removed."""
        with self._lock.write_locked():
            removed = self._users.pop(key, None) is not None
        if removed:
            logger.info(f"Cache invalidated for {key}")
        return removed

    # ── OAuth state ───────────────────────────────────────────────────────────

    def create_oauth_state(self) -> str:
        state = secrets.token_hex(OAUTH_STATE_BYTES)
        now = self._clock()
        with self._lock.write_locked():
            self._states[state] = now
        return state

    def validate_oauth_state(self, state: str) -> bool:
        """
        Consume `state` if it exists and is younger than OAUTH_STATE_TTL.
        Check and delete happen in one exclusive section, so a token
        validates at most once even under concurrent callbacks.
        """
        with self._lock.write_locked():
            created_at = self._states.get(state)
            if created_at is None:
                return False
            if is_expired(created_at, OAUTH_STATE_TTL, self._clock()):
                return False
            del self._states[state]
            return True

    # ── Sessions ──────────────────────────────────────────────────────────────

    def create_session(self, username: str, access_token: str, avatar_url: str) -> Session:
        now = self._clock()
        session = Session(
            id=secrets.token_hex(SESSION_ID_BYTES),
            username=username,
            access_token=access_token,
            avatar_url=avatar_url,
            created_at=now,
            expires_at=now + SESSION_TTL,
        )
        with self._lock.write_locked():
            self._sessions[session.id] = session
        logger.info(f"Session created for {username}")
        return session

    def get_session(self, session_id: str) -> Session | None:
        """An expired session reads as missing; deletion is left to the reaper."""
        with self._lock.read_locked():
            session = self._sessions.get(session_id)
        if session is None or self._clock() > session.expires_at:
            return None
        return session

    def delete_session(self, session_id: str) -> None:
        with self._lock.write_locked():
            self._sessions.pop(session_id, None)

    # ── Reaper ────────────────────────────────────────────────────────────────

    def reap(self) -> dict:
        """
        One sweep over all three maps under a single exclusive section.
        Returns the number of removed sessions, states and users.
        """
        now = self._clock()
        with self._lock.write_locked():
            expired_sessions = [sid for sid, s in self._sessions.items() if now > s.expires_at]
            for sid in expired_sessions:
                del self._sessions[sid]

            expired_states = [
                st for st, created in self._states.items()
                if is_expired(created, OAUTH_STATE_TTL, now)
            ]
            for st in expired_states:
                del self._states[st]

            expired_users = [
                key for key, entry in self._users.items()
                if is_expired(entry.updated_at, self._stats_ttl, now)
            ]
            for key in expired_users:
                del self._users[key]

        removed = {
            "sessions": len(expired_sessions),
            "states":   len(expired_states),
            "users":    len(expired_users),
        }
        if any(removed.values()):
            logger.info(f"Reaper removed {removed}")
        return removed

    def _reap_loop(self) -> None:
        interval = self._reaper_interval.total_seconds()
        while not self._stop.wait(interval):
            try:
                self.reap()
            except Exception:
                logger.exception("Reaper sweep failed")

    def close(self) -> None:
        """Stop the reaper thread. The store stays usable afterwards."""
        self._stop.set()
        if self._reaper is not None:
            self._reaper.join(timeout=5)
            self._reaper = None

    # ── Introspection ─────────────────────────────────────────────────────────

    def get_cache_stats(self) -> dict[str, int]:
        """Current map sizes, for the dashboard sidebar."""
        with self._lock.read_locked():
            return {
                "users":    len(self._users),
                "states":   len(self._states),
                "sessions": len(self._sessions),
            }
