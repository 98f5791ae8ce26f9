#tests\conftest.py

"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from rollout_engine.core.events import RecordingEventEmitter
from rollout_engine.core.models import (
    CanaryStrategy,
    Observation,
    PauseStep,
    PodTemplate,
    ReplicaSetSummary,
    Rollout,
    RolloutSpec,
    RolloutStatus,
    SetWeightStep,
)
from rollout_engine.core.observer import StaticObserver
from rollout_engine.core.replicasets import compute_pod_template_hash
from rollout_engine.core.service import RolloutService
from rollout_engine.core.state_machine import RolloutStateMachine
from rollout_engine.infrastructure.memory.repository import InMemoryRolloutRepository
from rollout_engine.infrastructure.postgres.database import drop_db, get_session_factory, init_db
from rollout_engine.infrastructure.postgres.repository import SqlRolloutRepository


STABLE_HASH = "6f8d9b7c4"
START = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by the service and the tests."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


# ============================================
# Domain fixtures
# ============================================

@pytest.fixture
def now():
    return START


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def template():
    return PodTemplate(
        labels={"app": "demo"},
        spec={"containers": [{"name": "app", "image": "demo:v2"}]},
    )


@pytest.fixture
def canary_spec(template):
    """Two steps: 20% canary, then a 10s pause."""
    return RolloutSpec(
        replicas=5,
        selector={"app": "demo"},
        template=template,
        strategy=CanaryStrategy(
            canary_service="demo-canary",
            stable_service="demo-stable",
            steps=[SetWeightStep(weight=20), PauseStep(duration="10s")],
        ),
    )


@pytest.fixture
def rollout(canary_spec):
    """Rollout updating away from an already promoted stable revision."""
    return Rollout(
        name="demo",
        namespace="default",
        spec=canary_spec,
        status=RolloutStatus(stable_rs=STABLE_HASH),
    )


@pytest.fixture
def latest_hash(template):
    return compute_pod_template_hash(template)


@pytest.fixture
def make_observation(latest_hash):
    """Factory: stable and canary replica sets, both fully available by default."""

    def _make(canary=5, stable=5, analysis=(), replica_failure=None, stable_annotations=None):
        replica_sets = [
            ReplicaSetSummary(
                pod_template_hash=STABLE_HASH,
                replicas=stable,
                ready_replicas=stable,
                available_replicas=stable,
                annotations=dict(stable_annotations or {}),
            ),
            ReplicaSetSummary(
                pod_template_hash=latest_hash,
                replicas=canary,
                ready_replicas=canary,
                available_replicas=canary,
            ),
        ]
        return Observation(
            replica_sets=tuple(rs for rs in replica_sets if rs.replicas or rs.annotations),
            replica_failure=replica_failure,
            analysis=tuple(analysis),
        )

    return _make


@pytest.fixture
def machine():
    return RolloutStateMachine()


# ============================================
# Infrastructure fixtures
# ============================================

@pytest.fixture
def emitter():
    return RecordingEventEmitter()


@pytest.fixture
def memory_repository():
    return InMemoryRolloutRepository()


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite engine shared across threads of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    yield engine

    drop_db(engine)
    engine.dispose()


@pytest.fixture
def sql_repository(sqlite_engine):
    """Create repository with test database session factory."""
    return SqlRolloutRepository(session_factory=get_session_factory(sqlite_engine))


@pytest.fixture(params=["memory", "sql"])
def repository(request):
    """Run repository contract tests against both implementations."""
    if request.param == "memory":
        return request.getfixturevalue("memory_repository")
    return request.getfixturevalue("sql_repository")


@pytest.fixture
def observer():
    return StaticObserver()


@pytest.fixture
def service(memory_repository, observer, emitter, clock):
    """Create service with in-memory repository and a fake clock."""
    return RolloutService(
        repository=memory_repository,
        observer=observer,
        event_emitter=emitter,
        clock=clock,
    )
