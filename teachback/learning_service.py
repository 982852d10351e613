"""
Learning Service.

Calling layer around the pure engines: loads state from the injected
repositories, runs the transforms and stores the results.

    service = LearningService(graphs=repo, ratings=repo, reviews=repo)
    report = service.record_session("u1", "Binary search", outcome, score)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from teachback.core.decay import utc_now
from teachback.core.errors import InputValidationError, parse_input
from teachback.core.repository import GraphRepository, RatingRepository, ReviewRepository
from teachback.graph.concept_graph import KnowledgeGraph, create_empty_graph, to_node_id
from teachback.graph.mastery_updater import LearningSessionOutcome, MasteryUpdater
from teachback.graph.recommender import Recommendation, RecommendationEngine
from teachback.rating.elo import (
    RatingDimension,
    RatingEngine,
    RatingSummary,
    RatingTrend,
    RatingUpdateResult,
    rating_trend,
    summarize_ratings,
)
from teachback.scoring.criterion import CriterionScoreResult
from teachback.study.retention_scheduler import (
    RetentionScheduler,
    ReviewItem,
    ReviewQualityEvent,
    get_due_reviews,
    quality_from_score,
)


@dataclass
class SessionReport:
    """Everything a completed session changed."""

    graph: KnowledgeGraph
    rating_updates: list[RatingUpdateResult] = field(default_factory=list)
    reviews: list[ReviewItem] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)


class LearningService:
    """Coordinates repositories and engines for one learner at a time."""

    def __init__(
        self,
        graphs: GraphRepository,
        ratings: RatingRepository,
        reviews: ReviewRepository,
        updater: MasteryUpdater | None = None,
        recommender: RecommendationEngine | None = None,
        rating_engine: RatingEngine | None = None,
        scheduler: RetentionScheduler | None = None,
    ):
        self.graphs = graphs
        self.ratings = ratings
        self.reviews = reviews
        self.updater = updater or MasteryUpdater()
        self.recommender = recommender or RecommendationEngine()
        self.rating_engine = rating_engine or RatingEngine()
        self.scheduler = scheduler or RetentionScheduler()

    def load_graph(self, user_id: str, now: datetime | None = None) -> KnowledgeGraph:
        graph = self.graphs.load_graph(user_id)
        return graph if graph is not None else create_empty_graph(user_id, now)

    def record_session(
        self,
        user_id: str,
        topic: str,
        outcome: LearningSessionOutcome | dict,
        score: CriterionScoreResult | None = None,
        now: datetime | None = None,
    ) -> SessionReport:
        """
        Fold a completed session into every model.

        - Graph: mastery update for mastered concepts and gaps
        - Ratings: one update per dimension when a criterion score is given
        - Reviews: mastered concepts are reviewed at a quality derived from
          the session score

        Args:
            user_id: Learner
            topic: Rating topic for the session
            outcome: Session outcome
            score: CriterionScorer result, if the session was graded
            now: Evaluation time

        Returns:
            SessionReport with the new graph, rating deltas, review items and
            fresh recommendations
        """
        if not topic or not topic.strip():
            raise InputValidationError("topic", "must not be empty", topic)
        outcome = parse_input(LearningSessionOutcome, outcome)
        now = now or utc_now()

        graph = self.updater.apply(self.load_graph(user_id, now), outcome, now)
        self.graphs.save_graph(graph)
        report = SessionReport(graph=graph)

        if score is not None:
            report.rating_updates = self._rate(user_id, topic, score, now)

        quality = quality_from_score(outcome.score)
        for label in outcome.mastered:
            concept = to_node_id(label)
            item = self.reviews.get_item(user_id, concept)
            event = ReviewQualityEvent(concept=concept, quality=quality)
            updated = self.scheduler.record_review(event, item, now, user_id=user_id)
            self.reviews.save_item(updated)
            report.reviews.append(updated)

        report.recommendations = self.recommender.recommend(graph, now=now)
        logger.info(
            f"Recorded session {outcome.id} for {user_id}: "
            f"{len(report.rating_updates)} rating updates, {len(report.reviews)} reviews scheduled"
        )
        return report

    def _rate(
        self, user_id: str, topic: str, score: CriterionScoreResult, now: datetime
    ) -> list[RatingUpdateResult]:
        records = {
            dimension: self.ratings.get_rating(user_id, topic, dimension)
            or self.rating_engine.new_record(user_id, topic, dimension)
            for dimension in RatingDimension
        }
        updates = list(self.rating_engine.update_from_score(records, score.raw, score.weighted, now).values())
        self.ratings.save_rating_updates(updates)
        return [update.result for update in updates]

    def rate(
        self,
        user_id: str,
        topic: str,
        dimension: str | RatingDimension,
        observed: float,
        now: datetime | None = None,
    ) -> RatingUpdateResult:
        """Single-dimension rating update."""
        dimension = RatingDimension.parse(dimension)
        record = self.ratings.get_rating(user_id, topic, dimension) or self.rating_engine.new_record(
            user_id, topic, dimension
        )
        update = self.rating_engine.update(record, observed, now)
        self.ratings.save_rating_updates([update])
        return update.result

    def recommend(self, user_id: str, limit: int | None = None, now: datetime | None = None) -> list[Recommendation]:
        return self.recommender.recommend(self.load_graph(user_id, now), limit=limit, now=now)

    def record_review(
        self, user_id: str, event: ReviewQualityEvent | dict, now: datetime | None = None
    ) -> ReviewItem:
        """Review one concept; the concept label is keyed by its node id, as sessions key it."""
        event = parse_input(ReviewQualityEvent, event)
        concept = to_node_id(event.concept)
        if not concept:
            raise InputValidationError("concept", "label has no usable characters", event.concept)
        event = event.model_copy(update={"concept": concept})
        item = self.reviews.get_item(user_id, event.concept)
        updated = self.scheduler.record_review(event, item, now, user_id=user_id)
        self.reviews.save_item(updated)
        return updated

    def due_reviews(self, user_id: str, now: datetime | None = None) -> list[ReviewItem]:
        return get_due_reviews(self.reviews.list_items(user_id), now)

    def rating_summary(self, user_id: str) -> RatingSummary:
        return summarize_ratings(self.ratings.list_ratings(user_id), self.rating_engine.config.initial_rating)

    def rating_trend(
        self, user_id: str, topic: str, dimension: str | RatingDimension = RatingDimension.OVERALL
    ) -> RatingTrend:
        return rating_trend(self.ratings.list_history(user_id, topic, RatingDimension.parse(dimension)))
