"""
Repository interfaces.

The engine never reads or writes storage itself; callers load a snapshot,
run a pure transform and save the result through these interfaces. Keys are
(user, concept) for review items and (user, topic, dimension) for ratings.

Writes of graphs and ratings are optimistic. A graph carries the stored
``version`` it was built from and a rating update carries the session count
it was computed against; if storage has moved on since the read, the write
raises ConcurrentUpdateError and nothing is stored. Review items are
last-write-wins.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from loguru import logger

from teachback.core.errors import ConcurrentUpdateError
from teachback.graph.concept_graph import KnowledgeGraph
from teachback.rating.elo import EloHistoryEntry, RatingDimension, RatingRecord, RatingUpdate
from teachback.study.retention_scheduler import ReviewItem


@runtime_checkable
class GraphRepository(Protocol):
    def load_graph(self, user_id: str) -> KnowledgeGraph | None: ...

    def save_graph(self, graph: KnowledgeGraph) -> None:
        """Store ``graph`` and bump its version; ConcurrentUpdateError if the stored version moved."""
        ...


@runtime_checkable
class RatingRepository(Protocol):
    def get_rating(self, user_id: str, topic: str, dimension: RatingDimension) -> RatingRecord | None: ...

    def save_rating_updates(self, updates: Sequence[RatingUpdate]) -> None:
        """Store every new record and its history row together, or none of them."""
        ...

    def list_history(
        self, user_id: str, topic: str | None = None, dimension: RatingDimension | None = None
    ) -> list[EloHistoryEntry]: ...

    def list_ratings(self, user_id: str) -> list[RatingRecord]: ...


@runtime_checkable
class ReviewRepository(Protocol):
    def get_item(self, user_id: str, concept: str) -> ReviewItem | None: ...

    def save_item(self, item: ReviewItem) -> None: ...

    def list_items(self, user_id: str) -> list[ReviewItem]: ...


class InMemoryRepository:
    """Dictionary-backed store for tests and single-process use."""

    def __init__(self):
        self._graphs: dict[str, dict] = {}
        self._ratings: dict[tuple[str, str, str], RatingRecord] = {}
        self._history: list[EloHistoryEntry] = []
        self._reviews: dict[tuple[str, str], ReviewItem] = {}

    # Graphs are stored serialised so callers cannot mutate the saved copy
    def load_graph(self, user_id: str) -> KnowledgeGraph | None:
        data = self._graphs.get(user_id)
        return KnowledgeGraph.from_dict(data) if data is not None else None

    def save_graph(self, graph: KnowledgeGraph) -> None:
        stored = self._graphs.get(graph.user_id)
        stored_version = stored["version"] if stored is not None else 0
        if stored_version != graph.version:
            logger.warning(f"Stale graph for {graph.user_id}: version {graph.version}, stored {stored_version}")
            raise ConcurrentUpdateError(f"graph {graph.user_id} was written concurrently")
        graph.version += 1
        self._graphs[graph.user_id] = graph.to_dict()

    def get_rating(self, user_id: str, topic: str, dimension: RatingDimension) -> RatingRecord | None:
        return self._ratings.get((user_id, topic, RatingDimension.parse(dimension).value))

    def save_rating_updates(self, updates: Sequence[RatingUpdate]) -> None:
        for change in updates:
            current = self._ratings.get(change.record.key)
            stored_count = current.session_count if current is not None else 0
            if stored_count != change.previous_session_count:
                logger.warning(f"Stale rating for {change.record.key}")
                raise ConcurrentUpdateError(f"rating {change.record.topic} was written concurrently")
        for change in updates:
            self._ratings[change.record.key] = change.record
            self._history.append(change.history)

    def list_history(
        self, user_id: str, topic: str | None = None, dimension: RatingDimension | None = None
    ) -> list[EloHistoryEntry]:
        return [
            e
            for e in self._history
            if e.user_id == user_id
            and (topic is None or e.topic == topic)
            and (dimension is None or e.dimension is RatingDimension.parse(dimension))
        ]

    def list_ratings(self, user_id: str) -> list[RatingRecord]:
        return [r for key, r in self._ratings.items() if key[0] == user_id]

    def get_item(self, user_id: str, concept: str) -> ReviewItem | None:
        return self._reviews.get((user_id, concept))

    def save_item(self, item: ReviewItem) -> None:
        self._reviews[(item.user_id, item.concept)] = item

    def list_items(self, user_id: str) -> list[ReviewItem]:
        return [item for key, item in self._reviews.items() if key[0] == user_id]
