"""
SQLAlchemy repository.

Implements GraphRepository, RatingRepository and ReviewRepository on the
tables in teachback.db.models. Each save is one transaction.

Graph snapshots and ratings are written with a conditional UPDATE on the
value the caller read (snapshot version, rating session count). If no row
matches, or a first insert hits the unique key, another writer got there
first: the transaction is rolled back and ConcurrentUpdateError is raised.
The caller decides whether to reload and retry.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from teachback.core.decay import ensure_utc
from teachback.core.errors import ConcurrentUpdateError
from teachback.db.database import session_scope
from teachback.db.models import (
    ConceptEdgeRow,
    ConceptNodeRow,
    EloHistoryRow,
    GraphSnapshotRow,
    RatingRow,
    ReviewItemRow,
)
from teachback.graph.concept_graph import (
    ConceptEdge,
    ConceptNode,
    GraphStats,
    KnowledgeGraph,
    Relation,
)
from teachback.rating.elo import EloHistoryEntry, RatingDimension, RatingRecord, RatingUpdate
from teachback.study.retention_scheduler import ReviewItem


def _utc(value):
    return ensure_utc(value) if value is not None else None


def _stale(what: str) -> ConcurrentUpdateError:
    logger.warning(f"Stale write on {what}")
    return ConcurrentUpdateError(f"{what} was written concurrently")


class SqlRepository:
    """Repository over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def _write(self, what: str, work) -> None:
        try:
            with session_scope(self.session_factory) as session:
                work(session)
        except IntegrityError as e:
            raise _stale(what) from e

    # =========================================================================
    # Graph
    # =========================================================================

    def load_graph(self, user_id: str) -> KnowledgeGraph | None:
        with session_scope(self.session_factory) as session:
            snapshot = session.get(GraphSnapshotRow, user_id)
            if snapshot is None:
                return None
            node_rows = session.scalars(
                select(ConceptNodeRow).where(ConceptNodeRow.user_id == user_id).order_by(ConceptNodeRow.position)
            ).all()
            edge_rows = session.scalars(
                select(ConceptEdgeRow).where(ConceptEdgeRow.user_id == user_id).order_by(ConceptEdgeRow.id)
            ).all()
            nodes = {
                row.node_id: ConceptNode(
                    id=row.node_id,
                    label=row.label,
                    domain=row.domain,
                    mastery=row.mastery,
                    sessions=row.sessions,
                    last_seen=_utc(row.last_seen),
                    decay_rate=row.decay_rate,
                    confidence=row.confidence,
                    source_sessions=list(row.source_sessions or []),
                ).validate()
                for row in node_rows
            }
            edges = [ConceptEdge(row.source, row.target, Relation(row.relation), row.strength) for row in edge_rows]
            return KnowledgeGraph(
                user_id=user_id,
                updated_at=ensure_utc(snapshot.updated_at),
                nodes=nodes,
                edges=edges,
                stats=GraphStats.from_dict(snapshot.stats),
                version=snapshot.version,
            )

    def save_graph(self, graph: KnowledgeGraph) -> None:
        """Write the snapshot if storage still holds ``graph.version``; bumps the version on success."""
        what = f"graph {graph.user_id}"

        def work(session: Session) -> None:
            values = {"updated_at": graph.updated_at, "stats": graph.stats.to_dict(), "version": graph.version + 1}
            if graph.version == 0:
                session.add(GraphSnapshotRow(user_id=graph.user_id, **values))
                session.flush()
            else:
                result = session.execute(
                    update(GraphSnapshotRow)
                    .where(GraphSnapshotRow.user_id == graph.user_id, GraphSnapshotRow.version == graph.version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise _stale(what)

            existing = {
                row.node_id: row
                for row in session.scalars(select(ConceptNodeRow).where(ConceptNodeRow.user_id == graph.user_id))
            }
            for position, node in enumerate(graph.nodes.values()):
                row = existing.get(node.id)
                if row is None:
                    row = ConceptNodeRow(user_id=graph.user_id, node_id=node.id)
                    session.add(row)
                row.label = node.label
                row.domain = node.domain
                row.position = position
                row.mastery = node.mastery
                row.sessions = node.sessions
                row.last_seen = node.last_seen
                row.decay_rate = node.decay_rate
                row.confidence = node.confidence
                row.source_sessions = list(node.source_sessions)

            session.execute(delete(ConceptEdgeRow).where(ConceptEdgeRow.user_id == graph.user_id))
            for edge in graph.edges:
                session.add(
                    ConceptEdgeRow(
                        user_id=graph.user_id,
                        source=edge.source,
                        target=edge.target,
                        relation=edge.relation.value,
                        strength=edge.strength,
                    )
                )

        self._write(what, work)
        graph.version += 1

    # =========================================================================
    # Ratings
    # =========================================================================

    @staticmethod
    def _record(row: RatingRow) -> RatingRecord:
        return RatingRecord(
            user_id=row.user_id,
            topic=row.topic,
            dimension=RatingDimension(row.dimension),
            rating=row.rating,
            k_factor=row.k_factor,
            session_count=row.session_count,
            peak_rating=row.peak_rating,
            updated_at=_utc(row.updated_at),
        )

    def get_rating(self, user_id: str, topic: str, dimension: RatingDimension) -> RatingRecord | None:
        dimension = RatingDimension.parse(dimension)
        with session_scope(self.session_factory) as session:
            row = session.scalars(
                select(RatingRow).where(
                    RatingRow.user_id == user_id,
                    RatingRow.topic == topic,
                    RatingRow.dimension == dimension.value,
                )
            ).one_or_none()
            return self._record(row) if row is not None else None

    def save_rating_updates(self, updates: Sequence[RatingUpdate]) -> None:
        """Write every record and its history row in one transaction, or none of them."""
        if not updates:
            return
        what = f"ratings for {updates[0].record.user_id}"

        def work(session: Session) -> None:
            for change in updates:
                record, entry = change.record, change.history
                values = {
                    "rating": record.rating,
                    "k_factor": record.k_factor,
                    "session_count": record.session_count,
                    "peak_rating": record.peak_rating,
                    "updated_at": record.updated_at,
                }
                if change.previous_session_count == 0:
                    session.add(
                        RatingRow(user_id=record.user_id, topic=record.topic, dimension=record.dimension.value, **values)
                    )
                    session.flush()
                else:
                    result = session.execute(
                        update(RatingRow)
                        .where(
                            RatingRow.user_id == record.user_id,
                            RatingRow.topic == record.topic,
                            RatingRow.dimension == record.dimension.value,
                            RatingRow.session_count == change.previous_session_count,
                        )
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise _stale(f"rating {record.topic}/{record.dimension.value}")
                session.add(
                    EloHistoryRow(
                        user_id=entry.user_id,
                        topic=entry.topic,
                        dimension=entry.dimension.value,
                        rating_before=entry.rating_before,
                        rating_after=entry.rating_after,
                        delta=entry.delta,
                        created_at=entry.created_at,
                    )
                )

        self._write(what, work)

    def list_history(
        self, user_id: str, topic: str | None = None, dimension: RatingDimension | None = None
    ) -> list[EloHistoryEntry]:
        query = select(EloHistoryRow).where(EloHistoryRow.user_id == user_id)
        if topic is not None:
            query = query.where(EloHistoryRow.topic == topic)
        if dimension is not None:
            query = query.where(EloHistoryRow.dimension == RatingDimension.parse(dimension).value)
        with session_scope(self.session_factory) as session:
            return [
                EloHistoryEntry(
                    user_id=row.user_id,
                    topic=row.topic,
                    dimension=RatingDimension(row.dimension),
                    rating_before=row.rating_before,
                    rating_after=row.rating_after,
                    delta=row.delta,
                    created_at=ensure_utc(row.created_at),
                )
                for row in session.scalars(query.order_by(EloHistoryRow.id))
            ]

    def list_ratings(self, user_id: str) -> list[RatingRecord]:
        with session_scope(self.session_factory) as session:
            rows = session.scalars(
                select(RatingRow).where(RatingRow.user_id == user_id).order_by(RatingRow.topic, RatingRow.dimension)
            )
            return [self._record(row) for row in rows]

    # =========================================================================
    # Review items
    # =========================================================================

    @staticmethod
    def _item(row: ReviewItemRow) -> ReviewItem:
        return ReviewItem(
            concept=row.concept,
            next_review=ensure_utc(row.next_review),
            last_review=_utc(row.last_review),
            interval=row.interval,
            ease_factor=row.ease_factor,
            repetitions=row.repetitions,
            user_id=row.user_id,
        )

    def get_item(self, user_id: str, concept: str) -> ReviewItem | None:
        with session_scope(self.session_factory) as session:
            row = session.scalars(
                select(ReviewItemRow).where(ReviewItemRow.user_id == user_id, ReviewItemRow.concept == concept)
            ).one_or_none()
            return self._item(row) if row is not None else None

    def save_item(self, item: ReviewItem) -> None:
        def work(session: Session) -> None:
            row = session.scalars(
                select(ReviewItemRow).where(
                    ReviewItemRow.user_id == item.user_id, ReviewItemRow.concept == item.concept
                )
            ).one_or_none()
            if row is None:
                row = ReviewItemRow(user_id=item.user_id, concept=item.concept)
                session.add(row)
            row.last_review = item.last_review
            row.next_review = item.next_review
            row.interval = item.interval
            row.ease_factor = item.ease_factor
            row.repetitions = item.repetitions

        self._write(f"review item {item.concept}", work)

    def list_items(self, user_id: str) -> list[ReviewItem]:
        with session_scope(self.session_factory) as session:
            rows = session.scalars(select(ReviewItemRow).where(ReviewItemRow.user_id == user_id))
            return [self._item(row) for row in rows]
