from teachback.scoring.criterion import (
    CriterionScoreInput,
    CriterionScorer,
    CriterionScoreResult,
    ScoringConfig,
    grade_for,
    legacy_to_solo,
    to_legacy,
)

__all__ = [
    "CriterionScoreInput",
    "CriterionScorer",
    "CriterionScoreResult",
    "ScoringConfig",
    "grade_for",
    "legacy_to_solo",
    "to_legacy",
]
