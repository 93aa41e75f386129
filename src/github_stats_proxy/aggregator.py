"""
Statistics aggregation over a user's profile, repositories and events.

Everything here is a pure function of its inputs (plus an explicit ``now``)
so the numbers can be reproduced in tests without any network access.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Mapping, Sequence

from github_stats_proxy.models import (
    EventType,
    StatsRecord,
    UpstreamEvent,
    UpstreamRepo,
    UpstreamUser,
)

RECENT_ACTIVITY_WINDOW = timedelta(days=30)
TOP_LANGUAGES_LIMIT = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def split_repos(repos: Iterable[UpstreamRepo]) -> tuple[list[UpstreamRepo], list[UpstreamRepo]]:
    """Partition repositories into (own, forks)."""
    own, forks = [], []
    for repo in repos:
        (forks if repo.fork else own).append(repo)
    return own, forks


def repo_totals(own_repos: Iterable[UpstreamRepo], now: datetime) -> tuple[int, int, int]:
    """
    Sum stars and forks over original repositories and count recent pushes.

    Returns:
        (total_stars, total_forks, recent_repo_activity)
    """
    cutoff = now - RECENT_ACTIVITY_WINDOW
    stars = forks = recent = 0
    for repo in own_repos:
        stars += repo.stargazers_count or 0
        forks += repo.forks_count or 0
        if repo.pushed_at is not None and repo.pushed_at > cutoff:
            recent += 1
    return stars, forks, recent


def merge_language_bytes(
    language_maps: Iterable[Mapping[str, int]],
) -> tuple[dict[str, int], int]:
    """
    Sum per-repository language byte counts.

    Returns:
        (bytes per language in first-seen order, grand total of bytes)
    """
    totals: dict[str, int] = {}
    grand_total = 0
    for languages in language_maps:
        for language, count in (languages or {}).items():
            totals[language] = totals.get(language, 0) + count
            grand_total += count
    return totals, grand_total


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def rank_languages(
    language_bytes: Mapping[str, int],
    grand_total: int,
    limit: int = TOP_LANGUAGES_LIMIT,
) -> dict[str, int]:
    """
    Percentage share of each language, highest first.

    The list is cut to ``limit`` before entries rounding to 0% are dropped,
    so fewer than ``limit`` languages may be returned. Ties keep first-seen
    order.
    """
    if grand_total <= 0:
        return {}

    shares = [
        (language, _round_half_up(count / grand_total * 100))
        for language, count in language_bytes.items()
    ]
    shares.sort(key=lambda item: item[1], reverse=True)
    return {language: pct for language, pct in shares[:limit] if pct > 0}


def count_activity(events: Iterable[UpstreamEvent]) -> tuple[int, int, int]:
    """
    Count commits, pull requests and issues in the event stream.

    Returns:
        (total_commits, total_prs, total_issues)
    """
    commits = prs = issues = 0
    for event in events:
        kind = event.event_type
        if kind is EventType.PUSH:
            commits += len(event.payload.commits or [])
        elif kind is EventType.PULL_REQUEST:
            prs += 1
        elif kind is EventType.ISSUE:
            issues += 1
    return commits, prs, issues


def push_dates(events: Iterable[UpstreamEvent]) -> list[date]:
    """Unique UTC calendar dates with a push, most recent first."""
    dates = {
        event.created.astimezone(timezone.utc).date()
        for event in events
        if event.event_type is EventType.PUSH
    }
    return sorted(dates, reverse=True)


def _is_recent(day: date, now: datetime) -> bool:
    today = now.date()
    if day == today:
        return True
    midnight = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return math.floor((now - midnight) / timedelta(days=1)) <= 1


def compute_streaks(events: Iterable[UpstreamEvent], now: datetime) -> tuple[int, int]:
    """
    Current and longest run of consecutive push days.

    Walks the push dates newest first, comparing each date with the next
    older one. ``temp`` counts the day-to-day links of the run being walked.
    Whenever the walk is on today or yesterday, the current streak becomes
    ``temp + 1``; a later qualifying date overwrites an earlier one. Runs are
    measured in days, so a lone push day is a streak of 1.

    Returns:
        (current_streak, longest_streak)
    """
    now = now.astimezone(timezone.utc)
    dates = push_dates(events)

    current = longest = temp = 0
    for i, day in enumerate(dates):
        if i + 1 < len(dates):
            if (day - dates[i + 1]).days == 1:
                temp += 1
            else:
                longest = max(longest, temp + 1)
                temp = 0

        if _is_recent(day, now):
            current = temp + 1

    if dates:
        longest = max(longest, temp + 1)

    return current, longest


def last_activity(events: Sequence[UpstreamEvent], user: UpstreamUser) -> str:
    """Timestamp of the newest event, or the account creation time."""
    if events and events[0].created_at:
        return events[0].created_at
    return user.created_at


def aggregate(
    user: UpstreamUser,
    repos: Sequence[UpstreamRepo],
    events: Sequence[UpstreamEvent],
    language_maps: Iterable[Mapping[str, int]],
    now: datetime | None = None,
) -> StatsRecord:
    """
    Fuse profile, repositories, events and language data into one record.

    Args:
        user: Profile of the subject user
        repos: All repositories of the user, forks included
        events: Public events, newest first
        language_maps: Language byte counts, one mapping per own repository
        now: Reference instant for streaks and recent activity

    Returns:
        The immutable StatsRecord
    """
    now = now or _utc_now()

    own, forks = split_repos(repos)
    total_stars, total_forks, recent = repo_totals(own, now)

    language_bytes, grand_total = merge_language_bytes(language_maps)
    top_languages = rank_languages(language_bytes, grand_total)

    total_commits, total_prs, total_issues = count_activity(events)
    current_streak, longest_streak = compute_streaks(events, now)

    return StatsRecord(
        username=user.login,
        followers=user.followers,
        following=user.following,
        public_repos=user.public_repos,
        public_gists=user.public_gists,
        account_created=user.created_at,
        last_activity=last_activity(events, user),
        total_repos=len(repos),
        total_stars=total_stars,
        total_forks=total_forks,
        contributed_to=len(forks),
        total_commits=total_commits,
        total_prs=total_prs,
        total_issues=total_issues,
        current_streak=current_streak,
        longest_streak=longest_streak,
        top_languages=top_languages,
        recent_repo_activity=recent,
        computed_at=_iso(_utc_now()),
    )
