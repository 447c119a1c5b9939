"""
exceptions.py — Typed failures shared by the upstream client and the ranking service.

Callers branch on the class, never on message text:
  - GitHubNotFoundError       definitive negative, never retried
  - GitHubRateLimitError      quota exhausted, prompt for authenticated access
  - GitHubAuthError           bad or expired credential / OAuth state
  - GitHubTransientError      network, timeout, 5xx; stale-cache fallback applies
  - GitHubInvalidPayloadError malformed upstream body, never coerced to empty
"""


class GitHubAPIError(Exception):
    """Base class for every upstream failure."""


class GitHubNotFoundError(GitHubAPIError):
    """Raised when the requested user, repository or country does not exist (404)."""


class GitHubRateLimitError(GitHubAPIError):
    """Raised when the GitHub API rate limit is exceeded (403/429)."""
    def __init__(self, reset_timestamp: int | None = None):
        self.reset_timestamp = reset_timestamp
        super().__init__("GitHub API rate limit exceeded.")


class GitHubAuthError(GitHubAPIError):
    """Raised when the provided token or OAuth state is invalid (401)."""


class GitHubTransientError(GitHubAPIError):
    """Network failure, timeout, or an unexpected status code."""


class GitHubInvalidPayloadError(GitHubAPIError):
    """The upstream answered 200 but the body could not be decoded into the expected shape."""
