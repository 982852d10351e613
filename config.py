"""
Configuration settings for teachback-core.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with TEACHBACK_ (e.g. TEACHBACK_DATABASE_URL).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from teachback.graph.mastery_updater import MasteryConfig
from teachback.graph.recommender import RecommenderConfig
from teachback.rating.elo import RatingConfig
from teachback.scoring.criterion import ScoringConfig
from teachback.session.coordinator import SessionConfig
from teachback.study.retention_scheduler import SM2Config


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TEACHBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///teachback.db",
        description="SQLAlchemy connection string",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum level for the CLI log sink",
    )

    # ========================================
    # Mastery
    # ========================================
    mastery_gain_cap: float = Field(
        default=0.4,
        gt=0,
        le=1,
        description="Mastery gained from a perfect session score",
    )
    mastery_provenance_limit: int = Field(
        default=10,
        ge=1,
        description="Most recent session ids kept per concept",
    )
    recommendation_limit: int = Field(
        default=3,
        ge=0,
        description="Default number of recommendations",
    )

    # ========================================
    # Rating
    # ========================================
    rating_initial: int = Field(default=1200, description="Rating of a new (topic, dimension)")
    rating_floor: int = Field(default=400, description="Lowest rating an update can produce")
    rating_provisional_k: int = Field(default=40, ge=1)
    rating_established_k: int = Field(default=16, ge=1)
    rating_provisional_sessions: int = Field(
        default=5,
        ge=0,
        description="Sessions during which the provisional K-factor applies",
    )
    rating_clamp_expected: bool = Field(
        default=True,
        description="Clamp the expected score to the 1-5 scale instead of extrapolating",
    )

    # ========================================
    # Scoring
    # ========================================
    scoring_conjunctive_floor: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Every criterion must reach this for a conjunctive pass",
    )
    scoring_high_grade_floor: int | None = Field(
        default=None,
        ge=1,
        le=5,
        description="Optional per-criterion minimum for grades A and B",
    )
    scoring_use_mode_weights: bool = Field(
        default=False,
        description="Use the per-mode production weights instead of equal weights",
    )

    # ========================================
    # Spaced repetition (SM-2)
    # ========================================
    sm2_initial_ease: float = Field(default=2.5, ge=1.3)
    sm2_minimum_ease: float = Field(default=1.3, gt=0)

    # ========================================
    # Session
    # ========================================
    session_max_turns: int = Field(default=6, ge=2)
    session_quit_after_failures: int = Field(default=3, ge=1)
    session_leading_penalty_limit: float = Field(
        default=0.0, ge=0, description="Accumulated leading penalty above which turns ask for a neutral re-ask"
    )

    def get_mastery_config(self) -> MasteryConfig:
        return MasteryConfig(gain_cap=self.mastery_gain_cap, provenance_limit=self.mastery_provenance_limit)

    def get_recommender_config(self) -> RecommenderConfig:
        return RecommenderConfig(default_limit=self.recommendation_limit)

    def get_rating_config(self) -> RatingConfig:
        return RatingConfig(
            initial_rating=self.rating_initial,
            rating_floor=self.rating_floor,
            provisional_k=self.rating_provisional_k,
            established_k=self.rating_established_k,
            provisional_sessions=self.rating_provisional_sessions,
            clamp_expected=self.rating_clamp_expected,
        )

    def get_scoring_config(self) -> ScoringConfig:
        return ScoringConfig(
            conjunctive_floor=self.scoring_conjunctive_floor,
            high_grade_floor=self.scoring_high_grade_floor,
            use_mode_weights=self.scoring_use_mode_weights,
        )

    def get_sm2_config(self) -> SM2Config:
        return SM2Config(initial_easiness=self.sm2_initial_ease, minimum_easiness=self.sm2_minimum_ease)

    def get_session_config(self) -> SessionConfig:
        return SessionConfig(
            max_turns=self.session_max_turns,
            quit_after_failures=self.session_quit_after_failures,
            leading_penalty_limit=self.session_leading_penalty_limit,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
