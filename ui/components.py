"""
ui/components.py — Reusable Streamlit UI components for gh-stats.
"""

import streamlit as st

from config import APP_ICON, APP_SUBTITLE, APP_TITLE
from core.analyzer import WEEKDAYS


def render_hero():
    """Render the hero header with title and subtitle."""
    st.markdown(
        f"""
        <div class="hero-header">
            <div class="hero-title">{APP_ICON} {APP_TITLE}</div>
            <div class="hero-subtitle">{APP_SUBTITLE}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_profile(stats: dict):
    """Profile card plus the streak row."""
    profile = stats.get("profile", {})
    streak  = stats.get("streak", {})

    left, right = st.columns([1, 3])
    with left:
        if profile.get("avatar_url"):
            st.image(profile["avatar_url"], width=120)
    with right:
        st.markdown(f"### {profile.get('name') or profile.get('login', '')}")
        st.caption(profile.get("bio") or "")
        st.markdown(
            f"**Location:** {profile.get('location') or 'N/A'}  \n"
            f"**Followers:** {profile.get('followers', 0)} · "
            f"**Following:** {profile.get('following', 0)} · "
            f"**Public repos:** {profile.get('public_repos', 0)}"
        )

    col1, col2, col3 = st.columns(3)
    col1.metric("Current streak 🔥", f"{streak.get('current_streak', 0)} days")
    col2.metric("Longest streak",     f"{streak.get('longest_streak', 0)} days")
    col3.metric("Contributions (1y)", streak.get("total_contributions", 0))


def render_languages(languages: list[dict]):
    """One horizontal bar per language, in the language's GitHub colour."""
    if not languages:
        st.caption("No language data.")
        return
    st.markdown("#### Languages")
    for lang in languages:
        st.markdown(
            f"""
            <div class="dim-row">
                <div class="dim-label">{lang['name']}</div>
                <div class="dim-bar-bg">
                    <div class="dim-bar-fill"
                         style="width: {lang['percentage']}%; background: {lang['color']};"></div>
                </div>
                <div class="dim-value">{lang['percentage']}%</div>
            </div>
            """,
            unsafe_allow_html=True,
        )


def render_fun_stats(fun: dict):
    """Commit-rhythm metrics and the hour / weekday charts."""
    if fun["total_commits"] == 0:
        st.info("⏳ Commit history is still loading in the background. Check back in a moment.")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total commits",       fun["total_commits"])
    col2.metric("Commits / active day", f"{fun['average_commits_per_day']:.1f}")
    col3.metric("Longest coding streak", f"{fun['longest_coding_streak']} days")
    col4.metric("Most active repo",    fun["most_active_repo"] or "N/A",
                f"{fun['most_active_repo_commits']} commits")

    col1, col2, col3 = st.columns(3)
    col1.metric("Weekend warrior 🏖️", f"{fun['weekend_warrior_percent']:.0f}%")
    col2.metric("Night owl 🦉",        f"{fun['night_owl_percent']:.0f}%")
    col3.metric("Early bird 🐦",       f"{fun['early_bird_percent']:.0f}%")

    st.markdown(
        f"**Most productive:** {fun['most_productive_day'] or 'N/A'} "
        f"around {fun['most_productive_hour']:02d}:00"
    )

    by_hour = fun["commits_by_hour"]
    st.bar_chart({"commits": [by_hour.get(h, 0) for h in range(24)]})


def render_repositories(repos: list[dict]):
    """Repository table."""
    if not repos:
        st.caption("No matching repositories.")
        return
    st.dataframe(
        [
            {
                "Name":     r["name"],
                "Language": r.get("language") or "",
                "Stars":    r.get("stars", 0),
                "Forks":    r.get("forks", 0),
                "Updated":  r.get("updated_at", ""),
            }
            for r in repos
        ],
        use_container_width=True,
        hide_index=True,
    )


def render_user_ranking(ranking):
    """Country and global position of one user (a core.models.UserRanking)."""
    col1, col2, col3 = st.columns(3)
    col1.metric(
        f"Rank in {ranking.country.replace('_', ' ').title()}",
        f"#{ranking.country_rank}", f"of {ranking.country_total}", delta_color="off",
    )
    if ranking.global_rank:
        col2.metric("Global rank", f"#{ranking.global_rank}",
                    f"of {ranking.global_total}", delta_color="off")
    else:
        col2.metric("Global rank", "N/A")
    col3.metric("Public contributions", ranking.public_contributions)


def render_leaderboard(ranking, limit: int = 25):
    """Top of one country's leaderboard (a core.models.CountryRanking)."""
    st.dataframe(
        [
            {
                "#":             i + 1,
                "Login":         u.login,
                "Name":          u.name,
                "Followers":     u.followers,
                "Public":        u.public_contributions,
                "Private":       u.private_contributions,
            }
            for i, u in enumerate(ranking.users[:limit])
        ],
        use_container_width=True,
        hide_index=True,
    )


def render_rate_limit_error(reset_timestamp: int | None):
    """Explain an exhausted rate limit and when it resets."""
    import datetime
    reset_str = ""
    if reset_timestamp:
        reset_dt = datetime.datetime.fromtimestamp(reset_timestamp)
        reset_str = f" Rate limit resets at **{reset_dt.strftime('%H:%M:%S')}**."
    st.error(
        f"⏱️ GitHub API rate limit exceeded.{reset_str} "
        "Set `GITHUB_TOKEN` to raise the limit to 5,000 req/hr."
    )


_LEVEL_COLORS = ["#161b22", "#0e4429", "#006d32", "#26a641", "#39d353"]


def render_contributions(weeks: list):
    """Last year's contribution calendar, one column per week (ContributionDay cells)."""
    if not weeks:
        return
    columns = []
    for week in weeks:
        cells = "".join(
            f'<div class="contrib-cell" title="{day.date}: {day.count}" '
            f'style="background: {_LEVEL_COLORS[min(day.level, 4)]};"></div>'
            for day in week
        )
        columns.append(f'<div class="contrib-week">{cells}</div>')
    st.markdown("#### Contributions")
    st.markdown(f'<div class="contrib-grid">{"".join(columns)}</div>', unsafe_allow_html=True)


def render_repo_stats(repo_stats: dict):
    """Commit breakdown for one repository."""
    repo = repo_stats["repository"]
    st.markdown(f"#### [{repo['name']}]({repo.get('url', '')})")
    if repo.get("description"):
        st.caption(repo["description"])

    first, last = repo_stats["first_commit"], repo_stats["last_commit"]
    col1, col2, col3 = st.columns(3)
    col1.metric("Commits",       repo_stats["total_commits"])
    col2.metric("First commit",  first.strftime("%Y-%m-%d") if first else "N/A")
    col3.metric("Latest commit", last.strftime("%Y-%m-%d") if last else "N/A")

    if repo_stats["total_commits"]:
        by_day = repo_stats["commits_by_day"]
        st.bar_chart(
            [{"day": day, "commits": by_day.get(day, 0)} for day in WEEKDAYS],
            x="day", y="commits",
        )
        st.dataframe(
            [
                {"Date": c.date.strftime("%Y-%m-%d %H:%M"), "Message": c.message.splitlines()[0] if c.message else ""}
                for c in repo_stats["commits"][:20]
            ],
            use_container_width=True,
            hide_index=True,
        )


def render_people(title: str, users: list[dict]):
    """A compact list of GitHub users (search results, followers, following)."""
    st.markdown(f"##### {title} ({len(users)})")
    if not users:
        st.caption("Nobody here.")
        return
    st.markdown(
        "  \n".join(f"[{u['login']}]({u.get('html_url', '')})" for u in users)
    )
