#rollout_engine\infrastructure\postgres\models.py
"""SQLAlchemy ORM models for database tables."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String

from rollout_engine.infrastructure.postgres.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RolloutORM(Base):
    """
    Rollout table - one row per rollout resource.

    Spec and status are stored in their camelCase wire form (JSON columns);
    phase is copied out so listings can filter on it.
    """

    __tablename__ = "rollouts"

    # Identity
    namespace = Column(String(63), primary_key=True)
    name = Column(String(253), primary_key=True)

    labels = Column(JSON, nullable=False, default=dict)
    annotations = Column(JSON, nullable=False, default=dict)

    # Desired / observed state
    spec = Column(JSON, nullable=False)
    status = Column(JSON, nullable=False)
    phase = Column(String(32), nullable=True, index=True)

    generation = Column(Integer, nullable=False, default=1)

    # Optimistic concurrency
    resource_version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index('ix_rollouts_namespace_phase', 'namespace', 'phase'),
    )

    def __repr__(self) -> str:
        return (
            f"<RolloutORM(key={self.namespace}/{self.name}, "
            f"phase={self.phase}, "
            f"resource_version={self.resource_version})>"
        )
