"""
Persistence models.

SQLAlchemy tables backing the repository interfaces:
- concept_nodes / concept_edges: the learner's knowledge graph
- graph_snapshots: derived stats and version of the last saved snapshot
- ratings: current Elo record per (user, topic, dimension)
- elo_history: append-only rating changes
- review_items: SM-2 state per (user, concept)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all teachback tables."""


class ConceptNodeRow(Base):
    __tablename__ = "concept_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    node_id: Mapped[str] = mapped_column(String(255), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String(64), default="other")
    position: Mapped[int] = mapped_column(Integer, default=0)  # insertion order within the graph

    mastery: Mapped[float] = mapped_column(Float, default=0.0)
    sessions: Mapped[int] = mapped_column(Integer, default=0)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    decay_rate: Mapped[float] = mapped_column(Float, default=0.3)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    source_sessions: Mapped[list] = mapped_column(JSON, default=list)

    __table_args__ = (UniqueConstraint("user_id", "node_id", name="uq_user_node"),)

    def __repr__(self) -> str:
        return f"<ConceptNodeRow user={self.user_id} node={self.node_id} mastery={self.mastery}>"


class ConceptEdgeRow(Base):
    __tablename__ = "concept_edges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    target: Mapped[str] = mapped_column(String(255), nullable=False)
    relation: Mapped[str] = mapped_column(String(32), nullable=False)
    strength: Mapped[float] = mapped_column(Float, default=1.0)

    __table_args__ = (UniqueConstraint("user_id", "source", "target", "relation", name="uq_user_edge"),)


class GraphSnapshotRow(Base):
    __tablename__ = "graph_snapshots"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    stats: Mapped[dict] = mapped_column(JSON, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # bumped on every save


class RatingRow(Base):
    __tablename__ = "ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    dimension: Mapped[str] = mapped_column(String(32), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, default=1200)
    k_factor: Mapped[int] = mapped_column(Integer, default=40)
    session_count: Mapped[int] = mapped_column(Integer, default=0)
    peak_rating: Mapped[int] = mapped_column(Integer, default=1200)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "topic", "dimension", name="uq_user_topic_dimension"),)

    def __repr__(self) -> str:
        return f"<RatingRow {self.topic}/{self.dimension} rating={self.rating}>"


class EloHistoryRow(Base):
    __tablename__ = "elo_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    dimension: Mapped[str] = mapped_column(String(32), nullable=False)
    rating_before: Mapped[int] = mapped_column(Integer, nullable=False)
    rating_after: Mapped[int] = mapped_column(Integer, nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_elo_history_key", "user_id", "topic", "dimension"),)


class ReviewItemRow(Base):
    __tablename__ = "review_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    concept: Mapped[str] = mapped_column(String(255), nullable=False)
    last_review: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_review: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "concept", name="uq_user_concept"),
        Index("idx_review_items_due", "user_id", "next_review"),
    )
