"""
config.py — Central configuration: API endpoints, cache TTLs, ranking sources.
"""

import os
from datetime import timedelta

# ─── GitHub API ───────────────────────────────────────────────────────────────
GITHUB_API_BASE = "https://api.github.com"
GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
GITHUB_PER_PAGE = 100
GITHUB_REQUEST_TIMEOUT = 30    # seconds
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", "")

# ─── OAuth ────────────────────────────────────────────────────────────────────
GITHUB_CLIENT_ID = os.getenv("GITHUB_CLIENT_ID", "")
GITHUB_CLIENT_SECRET = os.getenv("GITHUB_CLIENT_SECRET", "")
GITHUB_REDIRECT_URL = os.getenv("GITHUB_REDIRECT_URL", "http://localhost:8501")
GITHUB_OAUTH_SCOPES = ["read:user", "repo"]
GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_OAUTH_TOKEN_URL = "https://github.com/login/oauth/access_token"

# ─── Entry Store ──────────────────────────────────────────────────────────────
STATS_CACHE_TTL   = timedelta(minutes=10)
OAUTH_STATE_TTL   = timedelta(minutes=10)
SESSION_TTL       = timedelta(hours=24)
REAPER_INTERVAL   = timedelta(minutes=5)
OAUTH_STATE_BYTES = 16
SESSION_ID_BYTES  = 32
AUTH_CACHE_SUFFIX = ":auth"    # cache key suffix for a user's own (private) view

# ─── Commit backfill ──────────────────────────────────────────────────────────
BACKFILL_WORKERS = 4

# ─── Rankings ─────────────────────────────────────────────────────────────────
RANKING_BASE_URL   = "https://raw.githubusercontent.com/gayanvoice/top-github-users/main/cache"
COUNTRIES_LIST_URL = "https://api.github.com/repos/gayanvoice/top-github-users/contents/cache"
RANKING_TTL        = timedelta(hours=6)
COUNTRIES_TTL      = timedelta(hours=24)

# ─── Analytics ────────────────────────────────────────────────────────────────
NIGHT_OWL_START   = 22    # 22:00 – 05:59
NIGHT_OWL_END     = 6
EARLY_BIRD_START  = 5     # 05:00 – 08:59
EARLY_BIRD_END    = 9
DEFAULT_LANGUAGE_COLOR = "#8b8b8b"

# ─── Username Validation ──────────────────────────────────────────────────────
GITHUB_USERNAME_REGEX = r"^[a-zA-Z0-9\-]{1,39}$"

# ─── UI ──────────────────────────────────────────────────────────────────────
APP_TITLE       = "gh-stats"
APP_SUBTITLE    = "GitHub profiles, commit rhythms and country leaderboards."
APP_ICON        = "📈"
