#rollout_engine\infrastructure\postgres\repository.py

"""SQL repository implementation using SQLAlchemy."""

import logging
from typing import Iterable, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rollout_engine.core.errors import (
    RolloutAlreadyExists,
    RolloutConcurrencyError,
    RolloutNotFound,
    RolloutPersistenceError,
)
from rollout_engine.core.models import Rollout
from rollout_engine.core.repository import RolloutRepository
from rollout_engine.core.schemas import RolloutSpecSchema, RolloutStatusSchema
from rollout_engine.infrastructure.postgres.database import get_session_factory
from rollout_engine.infrastructure.postgres.models import RolloutORM

logger = logging.getLogger(__name__)


# ============================================
# Mapping Functions
# ============================================

def orm_to_domain(orm: RolloutORM) -> Rollout:
    """Convert ORM model to domain model."""
    return Rollout(
        name=orm.name,
        namespace=orm.namespace,
        labels=dict(orm.labels or {}),
        annotations=dict(orm.annotations or {}),
        spec=RolloutSpecSchema.model_validate(orm.spec).to_domain(),
        status=RolloutStatusSchema.model_validate(orm.status).to_domain(),
        generation=orm.generation,
        resource_version=orm.resource_version,
    )


def domain_to_orm(rollout: Rollout) -> RolloutORM:
    """Convert domain model to ORM model."""
    return RolloutORM(
        namespace=rollout.namespace,
        name=rollout.name,
        labels=dict(rollout.labels),
        annotations=dict(rollout.annotations),
        spec=RolloutSpecSchema.from_domain(rollout.spec).to_wire(),
        status=RolloutStatusSchema.from_domain(rollout.status).to_wire(),
        phase=rollout.status.phase.value if rollout.status.phase else None,
        generation=rollout.generation,
        resource_version=rollout.resource_version,
    )


# ============================================
# Repository Implementation
# ============================================

class SqlRolloutRepository(RolloutRepository):
    """SQLAlchemy implementation (PostgreSQL in production) with dependency injection."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Initialize repository with optional session factory.

        Args:
            session_factory: SQLAlchemy session factory. If None, uses default production factory.
        """
        self._session_factory = session_factory or get_session_factory()

    def _get_session(self) -> Session:
        """Get new session from the injected factory."""
        return self._session_factory()

    # -------------------------
    # CREATE
    # -------------------------

    def create(self, rollout: Rollout) -> Rollout:
        """Create a new rollout."""
        session = self._get_session()
        try:
            orm = domain_to_orm(rollout)
            orm.resource_version = 1
            session.add(orm)
            session.commit()
            logger.debug(f"[sql] create {rollout.key} -> done")
            return orm_to_domain(orm)
        except IntegrityError as e:
            session.rollback()
            raise RolloutAlreadyExists(f"Rollout {rollout.key} already exists") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise RolloutPersistenceError(f"Failed to create rollout {rollout.key}: {e}") from e
        finally:
            session.close()

    # -------------------------
    # READ
    # -------------------------

    def get(self, namespace: str, name: str) -> Optional[Rollout]:
        """Get rollout by namespace and name."""
        session = self._get_session()
        try:
            orm = session.get(RolloutORM, (namespace, name))

            if orm is None:
                logger.debug(f"[sql] get {namespace}/{name} -> not found")
                return None

            return orm_to_domain(orm)
        finally:
            session.close()

    def list(self, namespace: Optional[str] = None) -> Iterable[Rollout]:
        """List rollouts ordered by namespace and name."""
        session = self._get_session()
        try:
            query = session.query(RolloutORM)

            if namespace:
                query = query.filter(RolloutORM.namespace == namespace)

            results = query.order_by(RolloutORM.namespace.asc(), RolloutORM.name.asc()).all()
            logger.debug(f"[sql] list namespace={namespace} -> {len(results)} rows")

            return [orm_to_domain(orm) for orm in results]
        finally:
            session.close()

    # -------------------------
    # UPDATE
    # -------------------------

    def update(self, rollout: Rollout) -> Rollout:
        """Update rollout with optimistic locking on resource_version."""
        session = self._get_session()
        try:
            current = session.query(RolloutORM).filter(
                and_(
                    RolloutORM.namespace == rollout.namespace,
                    RolloutORM.name == rollout.name,
                )
            ).with_for_update().first()

            if current is None:
                raise RolloutNotFound(f"Rollout {rollout.key} not found")

            if current.resource_version != rollout.resource_version:
                raise RolloutConcurrencyError(
                    f"Update failed for {rollout.key} - concurrent modification "
                    f"(stored {current.resource_version}, got {rollout.resource_version})"
                )

            incoming = domain_to_orm(rollout)

            if current.spec != incoming.spec:
                current.generation = current.generation + 1

            current.labels = incoming.labels
            current.annotations = incoming.annotations
            current.spec = incoming.spec
            current.status = incoming.status
            current.phase = incoming.phase
            current.resource_version = current.resource_version + 1

            session.commit()
            logger.debug(f"[sql] update {rollout.key} -> v{current.resource_version}")
            return orm_to_domain(current)

        except (RolloutNotFound, RolloutConcurrencyError):
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise RolloutPersistenceError(f"Update failed for {rollout.key}: {e}") from e
        finally:
            session.close()
