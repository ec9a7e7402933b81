"""
clubhub.constants — Shared Constants & Helpers
===============================================

Single source of truth for the points formula, amplifier bounds and small
presentation helpers.  Import from here instead of duplicating in services
and routes.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

# ---------------------------------------------------------------------------
# Task points
# ---------------------------------------------------------------------------
RATING_MIN = 1
RATING_MAX = 5
POINTS_PER_RATING = 10

AMPLIFIER_MIN = 1.0
AMPLIFIER_MAX = 10.0


def task_points(urgency: int, difficulty: int, priority: int) -> int:
    """Base points for a task::

        points = (urgency + difficulty + priority) * 10
    """
    return (urgency + difficulty + priority) * POINTS_PER_RATING


def amplified_points(points: int, amplifier: float) -> int:
    """``points × amplifier`` rounded half-up to a whole number.

    The amplifier goes through ``str`` so 1.15 is treated as exactly 1.15
    rather than its binary approximation.
    """
    value = Decimal(points) * Decimal(str(amplifier))
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------
def iso_week_key(day: date) -> str:
    """``2026-W07`` style key for the ISO week containing *day*."""
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def next_monday(day: date) -> date:
    """First Monday strictly after *day*."""
    return day + timedelta(days=7 - day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------
def shorten_email(email: str) -> str:
    """``alice@example.org`` → ``ali...@example.org`` for public listings."""
    username, _, domain = email.partition("@")
    if not domain:
        return f"{username[:3]}..."
    return f"{username[:3]}...@{domain}"
