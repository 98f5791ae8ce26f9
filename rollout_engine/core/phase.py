"""Phase evaluator - derives the visible phase and the condition list."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from rollout_engine.core import conditions as cond
from rollout_engine.core.models import (
    ConditionStatus,
    RolloutCondition,
    RolloutConditionType,
    RolloutPhase,
    RolloutSpec,
    RolloutStatus,
)
from rollout_engine.core.pause import PauseConditionSet

# Messages
STALE_MESSAGE = "waiting for rollout spec update to be observed"
MANUAL_PAUSE_MESSAGE = "manually paused"
CONTROLLER_PAUSE_MESSAGE = "paused by controller"
MORE_REPLICAS_MESSAGE = "more replicas need to be updated"
BECOMING_AVAILABLE_MESSAGE = "updated replicas are still becoming available"
OLD_REPLICAS_MESSAGE = "old replicas are pending termination"
STEPS_MESSAGE = "waiting for all steps to complete"


@dataclass(frozen=True)
class ReplicaCounts:
    """Replica counts observed for one pass."""
    desired: int
    replicas: int = 0
    updated: int = 0
    ready: int = 0
    available: int = 0
    updated_available: int = 0
    old_pending: int = 0
    failure: Optional[str] = None

    def fully_updated(self) -> bool:
        return self.updated >= self.desired and self.updated_available >= self.updated


def pause_message(spec: RolloutSpec, status: RolloutStatus) -> Optional[str]:
    """Message naming why the rollout is paused, None when it is not."""
    pauses = PauseConditionSet.from_status(status)
    reasons = [r.value for r in pauses.reasons()]
    if spec.paused:
        reasons.insert(0, MANUAL_PAUSE_MESSAGE)
    if reasons:
        return ", ".join(reasons)
    if pauses.controller_pause:
        return CONTROLLER_PAUSE_MESSAGE
    return None


def evaluate_phase(
    spec: RolloutSpec,
    status: RolloutStatus,
    counts: ReplicaCounts,
    *,
    generation: int,
    steps_done: bool = True,
) -> Tuple[RolloutPhase, str]:
    """
    Pick the phase. First match wins:

    invalid spec > stale status > paused > aborted > replica failure >
    progressing > healthy.
    """
    invalid = status.condition(RolloutConditionType.INVALID_SPEC)
    if invalid is not None and invalid.status == ConditionStatus.TRUE:
        return RolloutPhase.DEGRADED, f"{cond.INVALID_SPEC_REASON}: {invalid.message}"

    if status.observed_generation < generation:
        return RolloutPhase.PROGRESSING, STALE_MESSAGE

    paused = pause_message(spec, status)
    if paused is not None:
        return RolloutPhase.PAUSED, paused

    if status.aborted:
        return RolloutPhase.DEGRADED, f"{cond.ABORTED_REASON}: {status.abort_message}"

    # Failures during a deliberate pause were reported as Paused above
    if counts.failure:
        return RolloutPhase.DEGRADED, f"{cond.REPLICA_FAILURE_REASON}: {counts.failure}"

    if not steps_done or status.stable_rs != status.current_pod_hash:
        return RolloutPhase.PROGRESSING, STEPS_MESSAGE
    if counts.updated < counts.desired:
        return RolloutPhase.PROGRESSING, MORE_REPLICAS_MESSAGE
    if counts.updated_available < counts.updated or counts.available < counts.desired:
        return RolloutPhase.PROGRESSING, BECOMING_AVAILABLE_MESSAGE
    if counts.old_pending > 0:
        return RolloutPhase.PROGRESSING, OLD_REPLICAS_MESSAGE

    return RolloutPhase.HEALTHY, ""


def compute_conditions(
    spec: RolloutSpec,
    status: RolloutStatus,
    counts: ReplicaCounts,
    phase: RolloutPhase,
    now: datetime,
) -> List[RolloutCondition]:
    """Refresh every condition type from the pass outcome."""
    conditions = list(status.conditions)

    if phase == RolloutPhase.PAUSED:
        conditions = cond.set_condition(conditions, cond.new_condition(
            RolloutConditionType.PAUSED, ConditionStatus.TRUE,
            cond.PAUSED_REASON, "Rollout is paused", now,
        ))
        progressing = cond.new_condition(
            RolloutConditionType.PROGRESSING, ConditionStatus.UNKNOWN,
            cond.PAUSED_REASON, "Rollout is paused", now,
        )
    else:
        conditions = cond.set_condition(conditions, cond.new_condition(
            RolloutConditionType.PAUSED, ConditionStatus.FALSE,
            cond.RESUMED_REASON, "Rollout is resumed", now,
        ))
        if status.aborted:
            progressing = cond.new_condition(
                RolloutConditionType.PROGRESSING, ConditionStatus.FALSE,
                cond.ABORTED_REASON, status.abort_message, now,
            )
        elif phase == RolloutPhase.HEALTHY:
            progressing = cond.new_condition(
                RolloutConditionType.PROGRESSING, ConditionStatus.TRUE,
                cond.NEW_RS_AVAILABLE_REASON,
                f"ReplicaSet with hash {status.current_pod_hash} has successfully progressed", now,
            )
        else:
            progressing = cond.new_condition(
                RolloutConditionType.PROGRESSING, ConditionStatus.TRUE,
                cond.REPLICA_SET_UPDATED_REASON,
                f"ReplicaSet with hash {status.current_pod_hash} is progressing", now,
            )
    conditions = cond.set_condition(conditions, progressing)

    if counts.available >= counts.desired:
        available = cond.new_condition(
            RolloutConditionType.AVAILABLE, ConditionStatus.TRUE,
            cond.AVAILABLE_REASON, "Rollout has minimum availability", now,
        )
    else:
        available = cond.new_condition(
            RolloutConditionType.AVAILABLE, ConditionStatus.FALSE,
            cond.NOT_AVAILABLE_REASON, "Rollout does not have minimum availability", now,
        )
    conditions = cond.set_condition(conditions, available)

    if counts.failure:
        conditions = cond.set_condition(conditions, cond.new_condition(
            RolloutConditionType.REPLICA_FAILURE, ConditionStatus.TRUE,
            cond.REPLICA_FAILURE_REASON, counts.failure, now,
        ))
    else:
        conditions = cond.remove_condition(conditions, RolloutConditionType.REPLICA_FAILURE)

    completed = (
        not status.aborted
        and status.stable_rs == status.current_pod_hash
        and counts.updated >= counts.desired
    )
    conditions = cond.set_condition(conditions, cond.new_condition(
        RolloutConditionType.COMPLETED,
        ConditionStatus.TRUE if completed else ConditionStatus.FALSE,
        cond.COMPLETED_REASON if completed else cond.NOT_COMPLETED_REASON,
        "Rollout completed update to revision" if completed else "Rollout update in progress",
        now,
    ))

    healthy = phase == RolloutPhase.HEALTHY
    conditions = cond.set_condition(conditions, cond.new_condition(
        RolloutConditionType.HEALTHY,
        ConditionStatus.TRUE if healthy else ConditionStatus.FALSE,
        cond.HEALTHY_REASON if healthy else cond.NOT_HEALTHY_REASON,
        "Rollout is healthy" if healthy else "Rollout is not healthy",
        now,
    ))

    return conditions
