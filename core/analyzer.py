"""
analyzer.py — Derive commit-rhythm statistics from raw commit and contribution records.

Input:  Commit lists (from EntryStore.get_commits) and contribution calendars
Output: plain dicts consumed by the service layer and the dashboard

Everything here is a pure function: no caching, no I/O, no clock reads
except where `today` defaults to the current date.

Tie-breaks for "most productive" buckets are explicit so that a fixed input
always gives a fixed answer:
  - hour:       lowest hour wins
  - weekday:    earliest weekday wins, Monday first
  - repository: the repository seen first in the commit sequence wins
"""

import logging
from collections import Counter
from datetime import date, timedelta

from config import (
    DEFAULT_LANGUAGE_COLOR,
    EARLY_BIRD_END,
    EARLY_BIRD_START,
    NIGHT_OWL_END,
    NIGHT_OWL_START,
)
from core.models import Commit, ContributionDay
from utils.utils import parse_day, safe_divide

logger = logging.getLogger(__name__)

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
WEEKEND = {"Saturday", "Sunday"}


# ─── Histograms ───────────────────────────────────────────────────────────────

def commit_histograms(commits: list[Commit]) -> dict:
    """
    Bucket commits by hour, weekday, month, repository and calendar day.
    Each commit is evaluated in the time zone recorded on its timestamp.
    """
    by_hour  = Counter()
    by_day   = Counter()
    by_month = Counter()
    by_repo  = Counter()
    by_date  = Counter()

    for c in commits:
        by_hour[c.date.hour] += 1
        by_day[WEEKDAYS[c.date.weekday()]] += 1
        by_month[c.date.strftime("%Y-%m")] += 1
        by_repo[c.repo] += 1
        by_date[c.date.strftime("%Y-%m-%d")] += 1

    return {
        "by_hour":  dict(by_hour),
        "by_day":   dict(by_day),
        "by_month": dict(by_month),
        "by_repo":  dict(by_repo),
        "by_date":  dict(by_date),
    }


def _strict_max(counts: dict, order) -> tuple:
    """First bucket in `order` holding the strict maximum; (None, 0) when empty."""
    best, best_count = None, 0
    for bucket in order:
        count = counts.get(bucket, 0)
        if count > best_count:
            best, best_count = bucket, count
    return best, best_count


def most_productive_hour(by_hour: dict) -> int:
    hour, _ = _strict_max(by_hour, range(24))
    return hour if hour is not None else 0


def most_productive_day(by_day: dict) -> str:
    day, _ = _strict_max(by_day, WEEKDAYS)
    return day or ""


def most_active_repo(by_repo: dict) -> tuple[str, int]:
    """Repository with the most commits; dict insertion order is first-seen order."""
    repo, count = _strict_max(by_repo, by_repo.keys())
    return repo or "", count


# ─── Streaks ──────────────────────────────────────────────────────────────────

def calculate_longest_streak(commits: list[Commit]) -> int:
    """
    Longest run of consecutive calendar days with at least one commit.
    Empty input → 0; a single distinct day → 1.
    """
    days = sorted({c.date.date() for c in commits})
    if not days:
        return 0

    longest = current = 1
    for prev, curr in zip(days, days[1:]):
        if curr - prev == timedelta(days=1):
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


def calculate_streak(
    weeks: list[list[ContributionDay]],
    total: int,
    today: date | None = None,
) -> dict:
    """
    Current and longest streak over a contribution calendar.

    Days are scanned newest first; a zero-count day ends the running streak.
    The first run of positive days counts as the current streak only if its
    newest day is today, or yesterday when today has nothing yet. Days dated
    after `today` (calendar rendered in a later time zone) are ignored.
    """
    today = today or date.today()
    yesterday = today - timedelta(days=1)

    days = sorted(
        (d for week in weeks for d in week if parse_day(d.date) <= today),
        key=lambda d: d.date,
        reverse=True,
    )

    current = longest = run = 0
    first_run_started = first_run_over = False
    first_run_is_current = False

    for day in days:
        if day.count > 0:
            if not first_run_started:
                first_run_started = True
                first_run_is_current = parse_day(day.date) in (today, yesterday)
            run += 1
            if first_run_is_current and not first_run_over:
                current = run
        else:
            longest = max(longest, run)
            run = 0
            if first_run_started:
                first_run_over = True

    longest = max(longest, run)

    return {
        "current_streak":      current,
        "longest_streak":      longest,
        "total_contributions": total,
    }


# ─── Fun Stats ────────────────────────────────────────────────────────────────

def _is_night(hour: int) -> bool:
    return hour >= NIGHT_OWL_START or hour < NIGHT_OWL_END


def _is_early(hour: int) -> bool:
    return EARLY_BIRD_START <= hour < EARLY_BIRD_END


def compute_fun_stats(commits: list[Commit], total_repositories: int = 0) -> dict:
    """
    Commit-rhythm metrics for the "fun stats" panel.

    Args:
        commits:            every commit known for the user (may be empty while
                            the background backfill is still running)
        total_repositories: repository count from the cached stats
    """
    hist  = commit_histograms(commits)
    total = len(commits)

    weekend = sum(1 for c in commits if WEEKDAYS[c.date.weekday()] in WEEKEND)
    night   = sum(1 for c in commits if _is_night(c.date.hour))
    early   = sum(1 for c in commits if _is_early(c.date.hour))

    repo, repo_commits = most_active_repo(hist["by_repo"])

    fun = {
        "most_productive_hour":     most_productive_hour(hist["by_hour"]),
        "most_productive_day":      most_productive_day(hist["by_day"]),
        "commits_by_hour":          hist["by_hour"],
        "commits_by_day_of_week":   hist["by_day"],
        "commits_by_month":         hist["by_month"],
        "average_commits_per_day":  safe_divide(total, len(hist["by_date"])),
        "longest_coding_streak":    calculate_longest_streak(commits),
        "total_commits":            total,
        "total_repositories":       total_repositories,
        "most_active_repo":         repo,
        "most_active_repo_commits": repo_commits,
        "weekend_warrior_percent":  safe_divide(weekend, total) * 100,
        "night_owl_percent":        safe_divide(night, total) * 100,
        "early_bird_percent":       safe_divide(early, total) * 100,
    }
    logger.debug(f"Fun stats over {total} commits: {fun['most_productive_day']} / {fun['most_productive_hour']}h")
    return fun


# ─── Repository Stats ─────────────────────────────────────────────────────────

def compute_repo_stats(repository: dict, commits: list[Commit]) -> dict:
    """Commit breakdown for a single repository (repo names match case-insensitively)."""
    name = repository.get("name", "").lower()
    repo_commits = [c for c in commits if c.repo.lower() == name]
    hist = commit_histograms(repo_commits)
    dates = [c.date for c in repo_commits]

    return {
        "repository":      repository,
        "commits":         repo_commits,
        "total_commits":   len(repo_commits),
        "first_commit":    min(dates) if dates else None,
        "last_commit":     max(dates) if dates else None,
        "commits_by_day":  hist["by_day"],
        "commits_by_hour": hist["by_hour"],
    }


# ─── Languages ────────────────────────────────────────────────────────────────

def calculate_languages(repos: list[dict], colors: dict[str, str] | None = None) -> list[dict]:
    """
    Share of repositories per primary language, as integer percentages.
    Sorted by percentage, highest first; ties keep first-seen order.
    """
    colors = colors or {}
    lang_counter = Counter(r["language"] for r in repos if r.get("language"))
    total = sum(lang_counter.values())
    if total == 0:
        return []

    languages = [
        {
            "name":       name,
            "percentage": count * 100 // total,
            "color":      colors.get(name) or DEFAULT_LANGUAGE_COLOR,
        }
        for name, count in lang_counter.items()
    ]
    languages.sort(key=lambda lang: lang["percentage"], reverse=True)
    return languages


# ─── Filters ──────────────────────────────────────────────────────────────────

def filter_stats_by_language(stats: dict, language: str) -> dict:
    """Shallow copy of `stats` keeping only repositories written in `language`."""
    wanted = language.lower()
    filtered = dict(stats)
    filtered["repositories"] = [
        r for r in stats.get("repositories", [])
        if (r.get("language") or "").lower() == wanted
    ]
    return filtered


def filter_repositories(repos: list[dict], query: str) -> list[dict]:
    """Repositories whose name, description or language contains `query`."""
    query = query.strip().lower()
    if not query:
        return list(repos)
    return [
        r for r in repos
        if query in (r.get("name") or "").lower()
        or query in (r.get("description") or "").lower()
        or query in (r.get("language") or "").lower()
    ]
