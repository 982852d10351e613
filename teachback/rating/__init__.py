from teachback.rating.elo import (
    EloHistoryEntry,
    RatingConfig,
    RatingDimension,
    RatingEngine,
    RatingRecord,
    RatingUpdateResult,
    expected_score,
    k_factor_for,
    rating_trend,
    summarize_ratings,
)

__all__ = [
    "EloHistoryEntry",
    "RatingConfig",
    "RatingDimension",
    "RatingEngine",
    "RatingRecord",
    "RatingUpdateResult",
    "expected_score",
    "k_factor_for",
    "rating_trend",
    "summarize_ratings",
]
