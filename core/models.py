"""
models.py — Value types shared by the store, analytics and ranking layers.

Records are frozen so that handing one to a caller never exposes cached
state to mutation. The per-user stats aggregate stays a plain dict.
"""

from dataclasses import dataclass, field
from datetime import datetime

_CONTRIBUTION_LEVELS = {
    "NONE":            0,
    "FIRST_QUARTILE":  1,
    "SECOND_QUARTILE": 2,
    "THIRD_QUARTILE":  3,
    "FOURTH_QUARTILE": 4,
}


def level_to_number(level: str) -> int:
    """Map a GraphQL contributionLevel to 0–4 (unknown levels map to 0)."""
    return _CONTRIBUTION_LEVELS.get(level, 0)


@dataclass(frozen=True)
class Commit:
    sha: str
    date: datetime          # timezone-aware, keeps the author's recorded offset
    repo: str
    message: str = ""
    author: str = ""
    email: str = ""
    url: str = ""


@dataclass(frozen=True)
class ContributionDay:
    date: str               # YYYY-MM-DD
    count: int
    level: int = 0


@dataclass(frozen=True)
class Session:
    id: str
    username: str
    access_token: str = field(repr=False)
    avatar_url: str
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class CountryUser:
    login: str
    name: str = ""
    followers: int = 0
    public_contributions: int = 0
    private_contributions: int = 0

    @classmethod
    def from_json(cls, data: dict) -> "CountryUser":
        """Build from one entry of a leaderboard `<country>.json` array."""
        return cls(
            login=data["login"],
            name=data.get("name") or "",
            followers=int(data.get("followers") or 0),
            public_contributions=int(data.get("publicContributions") or 0),
            private_contributions=int(data.get("privateContributions") or 0),
        )


@dataclass(frozen=True)
class CountryRanking:
    country: str
    users: tuple[CountryUser, ...]
    fetched_at: datetime


@dataclass(frozen=True)
class GlobalUser:
    login: str
    country: str
    public_contributions: int


@dataclass(frozen=True)
class UserRanking:
    username: str
    country: str
    country_rank: int
    country_total: int
    global_rank: int
    global_total: int
    public_contributions: int
    private_contributions: int
    followers: int
