"""
github_client.py — All GitHub REST and GraphQL interactions.

Responsibilities:
  - Authenticate requests (public token, or a user's OAuth access token)
  - Fetch profile, repositories, contribution calendar and commits
  - Follow pagination for repositories and commits
  - Raise typed exceptions (core.exceptions) for clean error handling upstream
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import requests

from config import (
    GITHUB_API_BASE,
    GITHUB_CLIENT_ID,
    GITHUB_CLIENT_SECRET,
    GITHUB_GRAPHQL_URL,
    GITHUB_OAUTH_TOKEN_URL,
    GITHUB_PER_PAGE,
    GITHUB_REQUEST_TIMEOUT,
)
from core.analyzer import calculate_languages, calculate_streak
from core.exceptions import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubInvalidPayloadError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubTransientError,
)
from core.models import Commit, ContributionDay, level_to_number
from utils.utils import parse_github_date, retry, utc_now

logger = logging.getLogger(__name__)

_CONTRIBUTIONS_QUERY = """
query($login: String!) {
  user(login: $login) {
    contributionsCollection {
      contributionCalendar {
        totalContributions
        weeks {
          contributionDays { contributionCount date contributionLevel }
        }
      }
    }
  }
}
"""

_LANGUAGE_COLORS_QUERY = """
query($login: String!) {
  user(login: $login) {
    repositories(first: 100, ownerAffiliations: OWNER) {
      nodes {
        languages(first: 10) { edges { node { name color } } }
      }
    }
  }
}
"""


# ─── Client ──────────────────────────────────────────────────────────────────

class GitHubClient:
    """
    Thin wrapper around the GitHub REST API v3 and GraphQL API v4.

    Usage:
        client = GitHubClient(token="ghp_...")
        stats = client.fetch_stats("octocat")
    """

    def __init__(self, token: str | None = None):
        self.token = token or None
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def with_token(self, token: str) -> "GitHubClient":
        """A client for the same API acting as another credential (e.g. a session's)."""
        return GitHubClient(token=token)

    # ── Internal request helpers ──────────────────────────────────────────────

    @retry(max_attempts=2, delay=1.5, exceptions=(requests.Timeout, requests.ConnectionError))
    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        return self.session.request(method, url, timeout=GITHUB_REQUEST_TIMEOUT, **kwargs)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Perform a request and map failures onto the typed exceptions.
        Timeouts and connection errors are retried once before surfacing;
        every other transport failure is Transient straight away.
        """
        try:
            response = self._send(method, url, **kwargs)
        except requests.RequestException as exc:
            raise GitHubTransientError(f"GitHub unreachable: {exc}") from exc

        if response.status_code == 200:
            return response
        elif response.status_code == 404:
            raise GitHubNotFoundError(f"Not found: {url}")
        elif response.status_code == 401:
            raise GitHubAuthError("Invalid or expired GitHub token.")
        elif response.status_code in (403, 429):
            reset_ts = response.headers.get("X-RateLimit-Reset")
            raise GitHubRateLimitError(
                reset_timestamp=int(reset_ts) if reset_ts else None
            )
        else:
            raise GitHubTransientError(
                f"GitHub API returned {response.status_code} for {url}"
            )

    def _get_json(self, path: str, params: dict | None = None):
        response = self._request("GET", f"{GITHUB_API_BASE}{path}", params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise GitHubInvalidPayloadError(f"Undecodable body for {path}") from exc

    def _graphql(self, query: str, variables: dict) -> dict:
        response = self._request(
            "POST", GITHUB_GRAPHQL_URL, json={"query": query, "variables": variables}
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise GitHubInvalidPayloadError("Undecodable GraphQL body") from exc
        if body.get("errors"):
            message = body["errors"][0].get("message", "GraphQL error")
            error_type = body["errors"][0].get("type")
            if error_type == "NOT_FOUND":
                raise GitHubNotFoundError(message)
            if error_type == "RATE_LIMITED":
                reset_ts = response.headers.get("X-RateLimit-Reset")
                raise GitHubRateLimitError(
                    reset_timestamp=int(reset_ts) if reset_ts else None
                )
            raise GitHubInvalidPayloadError(message)
        return body.get("data") or {}

    def _paginate(self, path: str, params: dict) -> list:
        items: list = []
        page = 1
        while True:
            batch = self._get_json(path, {**params, "per_page": GITHUB_PER_PAGE, "page": page})
            if not isinstance(batch, list):
                raise GitHubInvalidPayloadError(f"Expected a list from {path}")
            items.extend(batch)
            if len(batch) < GITHUB_PER_PAGE:
                return items
            page += 1

    # ── Public fetch methods ──────────────────────────────────────────────────

    def fetch_profile(self, username: str) -> dict:
        """Fetch a user profile; an empty username means the authenticated user."""
        logger.info(f"Fetching profile for: {username or '<self>'}")
        return self._get_json(f"/users/{username}" if username else "/user")

    def fetch_repositories(self, username: str, visibility: str = "public") -> list[dict]:
        """
        Owned, non-fork, non-archived repositories, most recently updated first.
        `visibility` of "private" or "all" needs the owner's own token.
        """
        logger.info(f"Fetching {visibility} repos for: {username}")
        if visibility in ("all", "private"):
            raw = self._paginate("/user/repos", {
                "sort": "updated", "affiliation": "owner", "visibility": visibility,
            })
        else:
            raw = self._paginate(f"/users/{username}/repos", {"sort": "updated"})

        repos = []
        for r in raw:
            if r.get("fork") or r.get("archived"):
                continue
            if visibility == "private" and not r.get("private"):
                continue
            if visibility == "public" and r.get("private"):
                continue
            repos.append({
                "name":        r.get("name", ""),
                "description": r.get("description") or "",
                "url":         r.get("html_url", ""),
                "stars":       r.get("stargazers_count", 0),
                "forks":       r.get("forks_count", 0),
                "language":    r.get("language") or "",
                "updated_at":  r.get("updated_at", ""),
                "private":     bool(r.get("private")),
            })
        return repos

    def fetch_contribution_calendar(self, username: str) -> tuple[list[list[ContributionDay]], int]:
        """Return (weeks, total_contributions) for the last year."""
        logger.info(f"Fetching contribution calendar for: {username}")
        data = self._graphql(_CONTRIBUTIONS_QUERY, {"login": username})
        user = data.get("user")
        if user is None:
            raise GitHubNotFoundError(f"User not found: {username}")
        try:
            cal = user["contributionsCollection"]["contributionCalendar"]
            weeks = [
                [
                    ContributionDay(
                        date=d["date"],
                        count=d["contributionCount"],
                        level=level_to_number(d.get("contributionLevel", "")),
                    )
                    for d in w["contributionDays"]
                ]
                for w in cal["weeks"]
            ]
            return weeks, cal["totalContributions"]
        except (KeyError, TypeError) as exc:
            raise GitHubInvalidPayloadError(f"Malformed contribution calendar: {exc}") from exc

    def fetch_commits(self, username: str, repo: str, branch: str = "") -> list[Commit]:
        """Every commit on `branch` (default branch when empty) of username/repo."""
        params = {"sha": branch} if branch else {}
        raw = self._paginate(f"/repos/{username}/{repo}/commits", params)

        commits = []
        for r in raw:
            info = r.get("commit") or {}
            author = info.get("author") or {}
            date = parse_github_date(author.get("date"))
            if date is None:
                continue
            commits.append(Commit(
                sha=r.get("sha", ""),
                date=date,
                repo=repo,
                message=info.get("message", ""),
                author=author.get("name", ""),
                email=author.get("email", ""),
                url=r.get("html_url", ""),
            ))
        return commits

    def fetch_all_commits(self, username: str, repos: list[dict]) -> list[Commit]:
        """
        Commits across `repos`, newest first. A repository that fails
        (empty repo, DMCA, permissions) is skipped rather than failing the batch;
        rate limiting still aborts.
        """
        all_commits: list[Commit] = []
        for repo in repos:
            try:
                all_commits.extend(self.fetch_commits(username, repo["name"]))
            except GitHubRateLimitError:
                raise
            except (GitHubNotFoundError, GitHubTransientError, GitHubInvalidPayloadError) as exc:
                logger.warning(f"Skipping commits for {username}/{repo['name']}: {exc}")
        all_commits.sort(key=lambda c: c.date, reverse=True)
        return all_commits

    def fetch_language_colors(self, username: str) -> dict[str, str]:
        data = self._graphql(_LANGUAGE_COLORS_QUERY, {"login": username})
        colors: dict[str, str] = {}
        nodes = ((data.get("user") or {}).get("repositories") or {}).get("nodes") or []
        for node in nodes:
            for edge in (node.get("languages") or {}).get("edges") or []:
                lang = edge.get("node") or {}
                if lang.get("color"):
                    colors[lang["name"]] = lang["color"]
        return colors

    # ── Aggregate fetch ───────────────────────────────────────────────────────

    def fetch_stats(self, username: str, visibility: str = "public") -> dict:
        """
        Fetch profile, repositories and contribution calendar for a username.
        Repositories and the calendar are fetched concurrently.

        Returns:
            {
                "profile":       {...},
                "repositories":  [...],
                "contributions": [[ContributionDay, ...], ...],
                "languages":     [...],
                "streak":        {...},
                "updated_at":    datetime,
            }

        Raises:
            GitHubNotFoundError, GitHubRateLimitError, GitHubAuthError,
            GitHubTransientError, GitHubInvalidPayloadError
        """
        # Profile must come first to validate the user exists
        profile = self.fetch_profile(username)

        with ThreadPoolExecutor(max_workers=2) as executor:
            future_repos    = executor.submit(self.fetch_repositories, username, visibility)
            future_calendar = executor.submit(self.fetch_contribution_calendar, username)
            repos = future_repos.result()
            weeks, total = future_calendar.result()

        try:
            colors = self.fetch_language_colors(username) if repos else {}
        except GitHubAPIError as exc:
            logger.warning(f"Language colours unavailable for {username}: {exc}")
            colors = {}

        logger.info(f"Fetched {len(repos)} repos, {total} contributions for {username}")

        return {
            "profile":       profile,
            "repositories":  repos,
            "contributions": weeks,
            "languages":     calculate_languages(repos, colors),
            "streak":        calculate_streak(weeks, total),
            "updated_at":    utc_now(),
        }

    # ── People ────────────────────────────────────────────────────────────────

    def search_users(self, query: str) -> list[dict]:
        data = self._get_json("/search/users", params={"q": query, "per_page": 20})
        return data.get("items", [])

    def fetch_followers(self, username: str) -> list[dict]:
        return self._get_json(f"/users/{username}/followers", params={"per_page": 100})

    def fetch_following(self, username: str) -> list[dict]:
        return self._get_json(f"/users/{username}/following", params={"per_page": 100})

    # ── OAuth ─────────────────────────────────────────────────────────────────

    def exchange_code(self, code: str) -> str:
        """
        Trade an OAuth callback `code` for a user access token.

        Raises:
            GitHubAuthError: GitHub rejected the code (expired, reused, wrong app)
        """
        response = self._request(
            "POST",
            GITHUB_OAUTH_TOKEN_URL,
            data={
                "client_id":     GITHUB_CLIENT_ID,
                "client_secret": GITHUB_CLIENT_SECRET,
                "code":          code,
            },
            headers={"Accept": "application/json"},
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise GitHubInvalidPayloadError("Undecodable OAuth token response") from exc
        # GitHub answers 200 with an `error` field for a bad code
        if body.get("error") or not body.get("access_token"):
            raise GitHubAuthError(body.get("error_description") or "OAuth code exchange failed.")
        return body["access_token"]
