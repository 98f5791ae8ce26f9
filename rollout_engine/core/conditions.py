"""Rollout condition list helpers (one entry per condition type)."""

from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from rollout_engine.core.models import (
    ConditionStatus,
    RolloutCondition,
    RolloutConditionType,
)

# Reasons
INVALID_SPEC_REASON = "InvalidSpec"
REPLICA_SET_UPDATED_REASON = "ReplicaSetUpdated"
NEW_RS_AVAILABLE_REASON = "NewReplicaSetAvailable"
PAUSED_REASON = "RolloutPaused"
RESUMED_REASON = "RolloutResumed"
ABORTED_REASON = "RolloutAborted"
AVAILABLE_REASON = "AvailableReason"
NOT_AVAILABLE_REASON = "NotAvailable"
REPLICA_FAILURE_REASON = "ReplicaSetCreateError"
COMPLETED_REASON = "RolloutCompleted"
NOT_COMPLETED_REASON = "RolloutNotCompleted"
HEALTHY_REASON = "RolloutHealthy"
NOT_HEALTHY_REASON = "RolloutNotHealthy"


def new_condition(
    condition_type: RolloutConditionType,
    status: ConditionStatus,
    reason: str,
    message: str,
    now: datetime,
) -> RolloutCondition:
    return RolloutCondition(
        type=condition_type,
        status=status,
        last_update_time=now,
        last_transition_time=now,
        reason=reason,
        message=message,
    )


def get_condition(
    conditions: List[RolloutCondition],
    condition_type: RolloutConditionType,
) -> Optional[RolloutCondition]:
    for cond in conditions:
        if cond.type == condition_type:
            return cond
    return None


def set_condition(
    conditions: List[RolloutCondition],
    condition: RolloutCondition,
) -> List[RolloutCondition]:
    """
    Return a new list with `condition` in place of any of the same type.

    An identical condition leaves the list untouched. lastTransitionTime only
    moves when the status flips; lastUpdateTime moves on any change.
    """
    existing = get_condition(conditions, condition.type)
    if existing is not None:
        if (
            existing.status == condition.status
            and existing.reason == condition.reason
            and existing.message == condition.message
        ):
            return list(conditions)
        if existing.status == condition.status:
            condition = replace(condition, last_transition_time=existing.last_transition_time)

    updated = [c for c in conditions if c.type != condition.type]
    updated.append(condition)
    return updated


def remove_condition(
    conditions: List[RolloutCondition],
    condition_type: RolloutConditionType,
) -> List[RolloutCondition]:
    return [c for c in conditions if c.type != condition_type]


def is_true(conditions: List[RolloutCondition], condition_type: RolloutConditionType) -> bool:
    cond = get_condition(conditions, condition_type)
    return cond is not None and cond.status == ConditionStatus.TRUE
