#rollout_engine\container.py

"""Dependency injection container - wires all services together."""

from functools import lru_cache
from typing import Optional

from rollout_engine.controller.config import ControllerSettings, get_controller_settings
from rollout_engine.controller.controller import RolloutController
from rollout_engine.core.events import LoggingEventEmitter, MultiEventEmitter
from rollout_engine.core.observer import ReplicaSetObserver, StaticObserver
from rollout_engine.core.repository import RolloutRepository
from rollout_engine.core.service import RolloutService
from rollout_engine.core.state_machine import RolloutStateMachine
from rollout_engine.infrastructure.memory.repository import InMemoryRolloutRepository
from rollout_engine.observer.client import HttpObserver


# ============================================
# REPOSITORIES
# ============================================

def build_repository(settings: ControllerSettings) -> RolloutRepository:
    if settings.in_memory:
        return InMemoryRolloutRepository()

    from rollout_engine.infrastructure.postgres.repository import SqlRolloutRepository
    return SqlRolloutRepository()


# ============================================
# OBSERVER
# ============================================

def build_observer(settings: ControllerSettings) -> ReplicaSetObserver:
    if settings.observer_url:
        return HttpObserver(settings.observer_url, timeout=settings.observer_timeout_seconds)
    return StaticObserver()


# ============================================
# SERVICES
# ============================================

def build_service(settings: Optional[ControllerSettings] = None) -> RolloutService:
    settings = settings or get_controller_settings()

    emitters = MultiEventEmitter([
        LoggingEventEmitter()
    ])

    return RolloutService(
        repository=build_repository(settings),
        observer=build_observer(settings),
        event_emitter=emitters,
        state_machine=RolloutStateMachine(settings.reconcile_config()),
        instance_id=settings.instance_id,
        conflict_retries=settings.conflict_retries,
    )


def build_controller(
    settings: Optional[ControllerSettings] = None,
    service: Optional[RolloutService] = None,
) -> RolloutController:
    settings = settings or get_controller_settings()
    return RolloutController(
        service=service or get_rollout_service(),
        config=settings.controller_config(),
    )


@lru_cache
def get_rollout_service() -> RolloutService:
    """Process-wide service shared by the API and the controller."""
    return build_service()
