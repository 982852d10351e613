"""
Achievements, engagement and streaks.

Achievement evaluation is a pure function of a UserStats snapshot against a
declarative rule table. Nothing is stored here: "newly unlocked" is a diff
against the ids the caller says were already unlocked, so badge state can be
rebuilt from history at any time.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum

from loguru import logger

from teachback.core.decay import round_half_up, utc_now


class AchievementTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class AchievementCategory(str, Enum):
    LEARNING = "learning"
    STREAK = "streak"
    MASTERY = "mastery"
    SOCIAL = "social"
    EXPLORATION = "exploration"


@dataclass(frozen=True)
class UserStats:
    """Aggregate learner activity used by the rules."""

    total_sessions: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_mastered: int = 0
    avg_score: float = 0.0
    unique_topics: int = 0
    total_days: int = 0
    grade_a_count: int = 0
    grade_s_count: int = 0
    modes_used: frozenset[str] = field(default_factory=frozenset)
    consecutive_high_scores: int = 0


@dataclass(frozen=True)
class Achievement:
    id: str
    title: str
    description: str
    category: AchievementCategory
    tier: AchievementTier
    condition: Callable[[UserStats], bool] = field(compare=False, repr=False)


@dataclass(frozen=True)
class UnlockedAchievement:
    achievement: Achievement
    unlocked_at: datetime
    is_new: bool


_L, _S, _M, _E = (
    AchievementCategory.LEARNING,
    AchievementCategory.STREAK,
    AchievementCategory.MASTERY,
    AchievementCategory.EXPLORATION,
)
_BRONZE, _SILVER, _GOLD, _PLATINUM = (
    AchievementTier.BRONZE,
    AchievementTier.SILVER,
    AchievementTier.GOLD,
    AchievementTier.PLATINUM,
)

ACHIEVEMENTS: tuple[Achievement, ...] = (
    # Learning milestones
    Achievement("first_teach", "First Steps", "Complete your first session", _L, _BRONZE, lambda s: s.total_sessions >= 1),
    Achievement("five_sessions", "Good Explainer", "Complete 5 sessions", _L, _BRONZE, lambda s: s.total_sessions >= 5),
    Achievement("ten_sessions", "Teacher", "Complete 10 sessions", _L, _SILVER, lambda s: s.total_sessions >= 10),
    Achievement("twentyfive_sessions", "Master Teacher", "Complete 25 sessions", _L, _GOLD, lambda s: s.total_sessions >= 25),
    Achievement("fifty_sessions", "Teaching Virtuoso", "Complete 50 sessions", _L, _PLATINUM, lambda s: s.total_sessions >= 50),
    # Streaks
    Achievement("streak_3", "Three in a Row", "Study 3 days in a row", _S, _BRONZE, lambda s: s.current_streak >= 3),
    Achievement("streak_7", "Weekly Habit", "Study 7 days in a row", _S, _SILVER, lambda s: s.current_streak >= 7),
    Achievement("streak_14", "Two-Week Challenge", "Study 14 days in a row", _S, _GOLD, lambda s: s.current_streak >= 14),
    Achievement("streak_30", "30-Day Marathon", "Study 30 days in a row", _S, _PLATINUM, lambda s: s.longest_streak >= 30),
    # Mastery
    Achievement("first_a", "Grade A", "Earn your first A", _M, _SILVER, lambda s: s.grade_a_count >= 1),
    Achievement("first_s", "Grade S", "Earn your first S", _M, _GOLD, lambda s: s.grade_s_count >= 1),
    Achievement(
        "high_avg", "Consistently High", "Average score of 80 or more", _M, _GOLD,
        lambda s: s.avg_score >= 80 and s.total_sessions >= 5,
    ),
    Achievement(
        "perfect_streak", "A-Streak", "Five A grades or better in a row", _M, _PLATINUM,
        lambda s: s.consecutive_high_scores >= 5,
    ),
    # Exploration
    Achievement("all_modes", "Explorer", "Use all 4 session modes", _E, _SILVER, lambda s: len(s.modes_used) >= 4),
    Achievement("five_topics", "Curious Mind", "Study 5 different topics", _E, _SILVER, lambda s: s.unique_topics >= 5),
    Achievement("ten_topics", "Polymath", "Study 10 different topics", _E, _GOLD, lambda s: s.unique_topics >= 10),
    Achievement("mastered_10", "Concept Master", "Master 10 concepts", _M, _SILVER, lambda s: s.total_mastered >= 10),
)


def evaluate_achievements(
    stats: UserStats,
    previously_unlocked: Iterable[str] = (),
    now: datetime | None = None,
    rules: Iterable[Achievement] = ACHIEVEMENTS,
) -> list[UnlockedAchievement]:
    """
    Every achievement whose rule holds, in rule-table order.

    The result is the full unlocked set, not just the difference; ``is_new``
    marks rules absent from ``previously_unlocked``.
    """
    previous = set(previously_unlocked)
    now = now or utc_now()
    unlocked = [
        UnlockedAchievement(achievement=rule, unlocked_at=now, is_new=rule.id not in previous)
        for rule in rules
        if rule.condition(stats)
    ]
    new_ids = [u.achievement.id for u in unlocked if u.is_new]
    if new_ids:
        logger.info(f"New achievements: {', '.join(new_ids)}")
    return unlocked


# =============================================================================
# Engagement
# =============================================================================


class EngagementLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


@dataclass(frozen=True)
class EngagementScore:
    score: int  # 0-100
    level: EngagementLevel
    factors: dict[str, float]


def engagement_score(stats: UserStats) -> EngagementScore:
    """
    Score engagement from four factors, each worth up to 25 points.

    - recency: full marks while a streak is running
    - frequency: sessions per active week
    - performance: average session score
    - diversity: distinct topics and modes
    """
    factors: dict[str, float] = {}
    if stats.current_streak > 0:
        factors["recency"] = 25.0
    else:
        factors["recency"] = float(max(0, 25 - stats.total_days * 2))

    per_week = (stats.total_sessions / stats.total_days) * 7 if stats.total_days > 0 else 0.0
    factors["frequency"] = min(25.0, per_week * 5)
    factors["performance"] = min(25.0, (stats.avg_score / 100) * 25)
    factors["diversity"] = float(min(25, stats.unique_topics * 3 + len(stats.modes_used) * 3))

    score = int(round_half_up(sum(factors.values())))
    if score >= 80:
        level = EngagementLevel.VERY_HIGH
    elif score >= 55:
        level = EngagementLevel.HIGH
    elif score >= 30:
        level = EngagementLevel.MEDIUM
    else:
        level = EngagementLevel.LOW
    return EngagementScore(score=score, level=level, factors=factors)


# =============================================================================
# Streaks
# =============================================================================


@dataclass(frozen=True)
class StreakData:
    current_streak: int = 0
    longest_streak: int = 0
    last_active: date | None = None
    total_days: int = 0


def advance_streak(streak: StreakData, today: date) -> StreakData:
    """Record activity on ``today``."""
    if streak.last_active == today:
        return streak
    if streak.last_active is not None and streak.last_active == today - timedelta(days=1):
        current = streak.current_streak + 1
    else:
        current = 1
    return replace(
        streak,
        current_streak=current,
        longest_streak=max(streak.longest_streak, current),
        last_active=today,
        total_days=streak.total_days + 1,
    )
