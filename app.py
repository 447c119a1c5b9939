"""
app.py — gh-stats Streamlit entry point.

Flow:
  1. Render hero, build the process-wide store / ranking / stats singletons
  2. Finish a GitHub sign-in if this run is the OAuth redirect (?code=&state=)
  3. User inputs a GitHub username (+ optional country for rankings)
  4. Stats come from the EntryStore, or GitHub on a miss (commits backfill in the background)
  5. Display profile, contributions, languages, fun stats, repositories, people and rankings
"""

import os
import logging

import streamlit as st
from dotenv import load_dotenv

load_dotenv()  # local .env, before config reads the environment

# ─── Page config (must be first Streamlit call) ───────────────────────────────
st.set_page_config(
    page_title="gh-stats",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ─── Imports (after set_page_config) ─────────────────────────────────────────
from config import GITHUB_CLIENT_ID, GITHUB_TOKEN
from core.cache import EntryStore
from core.exceptions import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from core.github_client import GitHubClient
from core.ranking import RankingService
from core.service import StatsService
from ui.components import (
    render_contributions,
    render_hero,
    render_languages,
    render_fun_stats,
    render_leaderboard,
    render_people,
    render_profile,
    render_rate_limit_error,
    render_repo_stats,
    render_repositories,
    render_user_ranking,
)
from utils.utils import validate_github_username

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ─── Load CSS ─────────────────────────────────────────────────────────────────
def _load_css():
    css_path = os.path.join(os.path.dirname(__file__), "ui", "styles.css")
    with open(css_path) as f:
        st.markdown(f"<style>{f.read()}</style>", unsafe_allow_html=True)


_load_css()


# ─── Process-wide singletons (shared by every browser session) ───────────────
@st.cache_resource
def _get_stats_service() -> StatsService:
    if not GITHUB_TOKEN:
        logger.warning("No GITHUB_TOKEN set, public requests limited to 60 req/hour")
    return StatsService(EntryStore(), GitHubClient(token=GITHUB_TOKEN or None))


@st.cache_resource
def _get_ranking_service() -> RankingService:
    return RankingService()


stats_service   = _get_stats_service()
ranking_service = _get_ranking_service()


# ─── Sign-in ──────────────────────────────────────────────────────────────────
def handle_oauth_callback():
    """
    GitHub redirects back with ?code=&state=. The state was issued by the
    process-wide store, so it validates even though the redirect lands in a
    fresh browser session.
    """
    code  = st.query_params.get("code")
    state = st.query_params.get("state")
    if not code or not state:
        return
    try:
        session = stats_service.complete_oauth_callback(state, code)
        st.session_state["session_id"] = session.id
        st.session_state["username"] = session.username
    except GitHubAuthError as exc:
        st.error(f"🔑 Sign-in failed: {exc}")
    except GitHubAPIError as exc:
        st.error(f"⚠️ Sign-in failed, GitHub API error: {exc}")
    finally:
        st.query_params.clear()


def render_account_sidebar():
    session = stats_service.current_user(st.session_state.get("session_id"))
    if session is None:
        st.session_state.pop("session_id", None)
        if not GITHUB_CLIENT_ID:
            st.caption("Set `GITHUB_CLIENT_ID` to enable sign-in.")
        elif st.button("Sign in with GitHub", use_container_width=True):
            _, authorize_url = stats_service.start_login()
            st.link_button("Continue to GitHub →", authorize_url, use_container_width=True)
        return

    if session.avatar_url:
        st.image(session.avatar_url, width=48)
    st.markdown(f"Signed in as **{session.username}**")
    if st.button("Sign out", use_container_width=True):
        stats_service.logout(session.id)
        st.session_state.pop("session_id", None)
        st.rerun()


# ─── Main pipeline ────────────────────────────────────────────────────────────
def show_api_error(exc: GitHubAPIError, subject: str):
    if isinstance(exc, GitHubNotFoundError):
        st.error(f"❌ {subject} not found. Check the name and try again.")
    elif isinstance(exc, GitHubRateLimitError):
        render_rate_limit_error(exc.reset_timestamp)
    elif isinstance(exc, GitHubAuthError):
        st.error("🔑 Your GitHub session is no longer valid. Please sign in again.")
    else:
        st.error(f"⚠️ GitHub API error: {exc}")


def load_stats(username: str, session_id: str | None) -> dict | None:
    """Cached-or-fetched stats, or None after showing an error."""
    with st.spinner("🔍 Fetching GitHub data..."):
        try:
            return stats_service.get_user_stats(username, session_id=session_id)
        except GitHubAPIError as exc:
            show_api_error(exc, f"GitHub user **{username}**")
    return None


def show_repositories(username: str, session_id: str | None):
    query = st.text_input("Filter repositories", placeholder="name, description or language")
    repos = stats_service.get_repositories(username, query, session_id=session_id) or []
    render_repositories(repos)
    if not repos:
        return

    repo_name = st.selectbox("Repository details", options=[""] + [r["name"] for r in repos])
    if not repo_name:
        return
    try:
        repo_stats = stats_service.get_repo_stats(username, repo_name, session_id=session_id)
    except GitHubNotFoundError:
        st.warning(f"**{repo_name}** is no longer cached for {username}.")
        return
    if repo_stats is not None:
        render_repo_stats(repo_stats)


def show_people(username: str, session_id: str | None):
    if not st.button("Load followers & following"):
        return
    try:
        followers = stats_service.get_followers(username, session_id=session_id)
        following = stats_service.get_following(username, session_id=session_id)
    except GitHubAPIError as exc:
        show_api_error(exc, f"GitHub user **{username}**")
        return
    col1, col2 = st.columns(2)
    with col1:
        render_people("Followers", followers)
    with col2:
        render_people("Following", following)


def show_rankings(username: str, country: str):
    try:
        if country:
            ranking = ranking_service.get_country_ranking(country)
            user_ranking = ranking_service.find_user_in_ranking(username, ranking)
        else:
            ranking = None
            user_ranking = ranking_service.find_user_ranking(username)
    except GitHubNotFoundError:
        st.warning(f"No leaderboard for **{country}**.")
        return
    except GitHubAPIError as exc:
        st.error(f"⚠️ Leaderboard unavailable: {exc}")
        return

    if user_ranking:
        render_user_ranking(user_ranking)
    else:
        st.caption(f"`{username}` is not on a cached leaderboard.")
    if ranking:
        st.markdown(f"#### Top of {ranking.country.replace('_', ' ').title()}")
        render_leaderboard(ranking)


# ─── UI Layout ────────────────────────────────────────────────────────────────
handle_oauth_callback()
render_hero()

st.markdown("---")

with st.form("stats_form", clear_on_submit=False):
    col_input, col_country, col_btn = st.columns([3, 3, 1])

    with col_input:
        username_input = st.text_input(
            "GitHub Username",
            value=st.session_state.get("username", ""),
            placeholder="e.g. torvalds",
            help="Enter any public GitHub username.",
        )

    with col_country:
        country_input = st.selectbox(
            "Country (for rankings)",
            options=[""] + ranking_service.get_available_countries(),
            format_func=lambda c: c.replace("_", " ").title() if c else "—",
        )

    with col_btn:
        st.markdown("<br>", unsafe_allow_html=True)  # vertical align
        submitted = st.form_submit_button("Show 📈", use_container_width=True)

with st.sidebar:
    st.markdown("#### Account")
    render_account_sidebar()

    st.markdown("#### Find a user")
    user_query = st.text_input("Search GitHub users", label_visibility="collapsed",
                               placeholder="Search GitHub users")
    if user_query.strip():
        try:
            render_people("Results", stats_service.search_users(
                user_query.strip(), session_id=st.session_state.get("session_id")
            ))
        except GitHubAPIError as exc:
            show_api_error(exc, "Search")

    st.markdown("#### Cache")
    st.json(stats_service.store.get_cache_stats())

# ─── Run on submit ────────────────────────────────────────────────────────────
# The chosen profile lives in session_state so widget reruns keep it on screen.
if submitted:
    candidate = username_input.strip()
    is_valid, err_msg = validate_github_username(candidate)
    if is_valid:
        st.session_state["username"] = candidate
        st.session_state["country"] = country_input
    else:
        st.error(f"❌ {err_msg}")
        st.session_state.pop("username", None)

username = st.session_state.get("username")

if username:
    session_id = st.session_state.get("session_id")
    stats = load_stats(username, session_id)

    if stats:
        tab_overview, tab_fun, tab_repos, tab_people, tab_rank = st.tabs(
            ["Overview", "Fun stats", "Repositories", "People", "Rankings"]
        )
        with tab_overview:
            render_profile(stats)
            render_contributions(stats.get("contributions", []))
            render_languages(stats.get("languages", []))
        with tab_fun:
            fun = stats_service.get_fun_stats(username, session_id=session_id)
            if fun is not None:
                render_fun_stats(fun)
        with tab_repos:
            show_repositories(username, session_id)
        with tab_people:
            show_people(username, session_id)
        with tab_rank:
            show_rankings(username, st.session_state.get("country", ""))

        st.markdown("---")
        st.caption(
            "gh-stats uses GitHub data. Profiles are cached for 10 minutes "
            "and leaderboards for 6 hours."
        )

# ─── Empty state ──────────────────────────────────────────────────────────────
else:
    st.markdown(
        """
        <div style="text-align:center; padding: 3rem 1rem; color: #8888aa;">
            <div style="font-size: 3rem; margin-bottom: 1rem;">📈</div>
            <div style="font-size: 1.1rem;">
                Enter a GitHub username above to see their stats.
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )
