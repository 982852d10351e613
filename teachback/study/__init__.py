"""
Study Module.

Provides:
- SM-2 review scheduling (independent of the graph's forgetting curve)
- Achievement rules, engagement score and streak tracking
"""

from teachback.study.achievements import (
    ACHIEVEMENTS,
    UserStats,
    advance_streak,
    engagement_score,
    evaluate_achievements,
)
from teachback.study.retention_scheduler import (
    RetentionScheduler,
    ReviewItem,
    SM2Config,
    get_due_reviews,
    new_review_item,
    quality_from_score,
)

__all__ = [
    "ACHIEVEMENTS",
    "UserStats",
    "advance_streak",
    "engagement_score",
    "evaluate_achievements",
    "RetentionScheduler",
    "ReviewItem",
    "SM2Config",
    "get_due_reviews",
    "new_review_item",
    "quality_from_score",
]
