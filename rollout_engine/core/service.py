"""Rollout service - business logic layer."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from rollout_engine.core import labels
from rollout_engine.core.errors import RolloutConcurrencyError, RolloutNotFound
from rollout_engine.core.events import EventEmitter
from rollout_engine.core.events_model import RolloutEvent
from rollout_engine.core.models import Rollout, RolloutStatus
from rollout_engine.core.observer import ReplicaSetObserver
from rollout_engine.core.replicasets import compute_pod_template_hash
from rollout_engine.core.state_machine import RolloutStateMachine

logger = logging.getLogger(__name__)

MANUAL_ABORT_MESSAGE = "manually aborted"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RolloutService:
    """Runs reconciliation passes and persists their outcome."""

    def __init__(
        self,
        repository,
        observer: ReplicaSetObserver,
        event_emitter: EventEmitter,
        *,
        state_machine: Optional[RolloutStateMachine] = None,
        instance_id: Optional[str] = None,
        conflict_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._repo = repository
        self._observer = observer
        self._emitter = event_emitter
        self._machine = state_machine or RolloutStateMachine()
        self._instance_id = instance_id
        self._conflict_retries = conflict_retries
        self._clock = clock

    # -------------------------
    # READ / CREATE
    # -------------------------

    def create(self, rollout: Rollout) -> Rollout:
        """Register a new rollout. Status is left for the first pass."""
        stored = self._repo.create(replace(rollout, status=RolloutStatus()))
        logger.info(f"[{stored.key}] Rollout created")
        return stored

    def get(self, namespace: str, name: str) -> Rollout:
        return self._require(namespace, name)

    def list(self, namespace: Optional[str] = None) -> List[Rollout]:
        return list(self._repo.list(namespace))

    def owns(self, rollout: Rollout) -> bool:
        """True when this controller instance is responsible for `rollout`."""
        return labels.matches_instance_id(rollout.labels, self._instance_id)

    def observer_healthy(self) -> bool:
        return self._observer.health_check()

    # -------------------------
    # RECONCILE
    # -------------------------

    def reconcile(self, namespace: str, name: str) -> Optional[Rollout]:
        """
        Run one pass for a rollout and persist the new status.

        Returns the stored rollout, or None when another controller instance
        owns it.

        Raises:
            RolloutNotFound: Unknown rollout
            ObservationUnavailable: Replica set state could not be read
            RolloutConcurrencyError: Conflicts persisted after all retries
        """
        return self._run_pass(namespace, name)

    def resume(self, namespace: str, name: str) -> Optional[Rollout]:
        """
        Resume a paused (or retry an aborted) rollout.

        Clears spec.paused, then runs a pass carrying the resume signal.
        """
        return self._run_pass(namespace, name, resume=True)

    def abort(self, namespace: str, name: str, message: str = MANUAL_ABORT_MESSAGE) -> Optional[Rollout]:
        """Abort the update: traffic returns to stable and the rollout turns Degraded."""

        events: List[RolloutEvent] = []

        def mark_aborted(rollout: Rollout, now: datetime) -> Rollout:
            events.clear()
            if rollout.status.aborted:
                return rollout
            pod_hash = compute_pod_template_hash(rollout.spec.template, rollout.status.collision_count)
            abort_message = f"Rollout aborted update to revision {pod_hash}: {message}"
            events.append(RolloutEvent.aborted(rollout.key, now, abort_message))
            return replace(rollout, status=replace(
                rollout.status,
                aborted=True,
                aborted_at=now,
                abort_message=abort_message,
                pause_conditions=[],
                controller_pause=False,
            ))

        stored = self._run_pass(namespace, name, prepare=mark_aborted)
        self._emit(events)
        return stored

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    def _run_pass(
        self,
        namespace: str,
        name: str,
        *,
        resume: bool = False,
        prepare: Optional[Callable[[Rollout, datetime], Rollout]] = None,
    ) -> Optional[Rollout]:
        for attempt in range(self._conflict_retries + 1):
            rollout = self._require(namespace, name)

            if not self.owns(rollout):
                logger.debug(f"[{rollout.key}] Owned by another controller instance, skipping")
                return None

            try:
                if resume and rollout.spec.paused:
                    # Spec edit: bumps generation before the pass observes it
                    rollout = self._repo.update(
                        replace(rollout, spec=replace(rollout.spec, paused=False))
                    )

                observation = self._observer.observe(rollout)
                now = self._clock()

                if prepare is not None:
                    rollout = prepare(rollout, now)

                result = self._machine.reconcile(rollout, observation, now, resume=resume)

                if result.replica_set_patches:
                    self._observer.apply_patches(rollout, result.replica_set_patches)

                stored = self._repo.update(replace(rollout, status=result.status))

            except RolloutConcurrencyError as e:
                logger.warning(
                    f"[{namespace}/{name}] Conflict on attempt {attempt + 1}, recomputing: {e}"
                )
                continue

            self._emit(result.events)
            logger.info(
                f"[{stored.key}] Reconciled: phase={stored.status.phase.value} "
                f"step={stored.status.current_step_index} "
                f"message={stored.status.message!r}"
            )
            return stored

        raise RolloutConcurrencyError(
            f"[{namespace}/{name}] Giving up after {self._conflict_retries + 1} conflicting writes"
        )

    def _require(self, namespace: str, name: str) -> Rollout:
        """Get rollout or raise error."""
        rollout = self._repo.get(namespace, name)
        if rollout is None:
            raise RolloutNotFound(f"Rollout {namespace}/{name} not found")
        return rollout

    def _emit(self, events):
        """Emit events via emitter."""
        if events:
            self._emitter.emit(events)
