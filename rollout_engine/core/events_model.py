"""Event models for the rollout engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RolloutEvent:
    """Something notable that happened during a reconciliation pass."""

    event_type: str
    rollout_key: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def step_advanced(
        key: str,
        now: datetime,
        from_index: Optional[int],
        to_index: Optional[int],
        completed: bool = False,
    ):
        return RolloutEvent(
            event_type="rollout.step_advanced",
            rollout_key=key,
            timestamp=now,
            metadata={"from_step": from_index, "to_step": to_index, "steps_completed": completed},
        )

    @staticmethod
    def steps_reset(key: str, now: datetime, step_hash: str, pod_hash: str):
        return RolloutEvent(
            event_type="rollout.steps_reset",
            rollout_key=key,
            timestamp=now,
            metadata={"step_hash": step_hash, "pod_hash": pod_hash},
        )

    @staticmethod
    def paused(key: str, now: datetime, reason: str):
        return RolloutEvent(
            event_type="rollout.paused",
            rollout_key=key,
            timestamp=now,
            metadata={"reason": reason},
        )

    @staticmethod
    def resumed(key: str, now: datetime, reasons):
        return RolloutEvent(
            event_type="rollout.resumed",
            rollout_key=key,
            timestamp=now,
            metadata={"cleared": list(reasons)},
        )

    @staticmethod
    def promoted(key: str, now: datetime, stable_rs: str, previous_stable_rs: str):
        return RolloutEvent(
            event_type="rollout.promoted",
            rollout_key=key,
            timestamp=now,
            metadata={"stable_rs": stable_rs, "previous_stable_rs": previous_stable_rs},
        )

    @staticmethod
    def aborted(key: str, now: datetime, message: str):
        return RolloutEvent(
            event_type="rollout.aborted",
            rollout_key=key,
            timestamp=now,
            metadata={"message": message},
        )

    @staticmethod
    def invalid_spec(key: str, now: datetime, message: str):
        return RolloutEvent(
            event_type="rollout.invalid_spec",
            rollout_key=key,
            timestamp=now,
            metadata={"message": message},
        )

    @staticmethod
    def phase_changed(key: str, now: datetime, old_phase, new_phase, message: str):
        return RolloutEvent(
            event_type="rollout.phase_changed",
            rollout_key=key,
            timestamp=now,
            metadata={
                "from": old_phase.value if old_phase else None,
                "to": new_phase.value if new_phase else None,
                "message": message,
            },
        )
