"""Pause condition set - the active reasons a rollout is held."""

from datetime import datetime
from typing import Iterable, List, Optional

from rollout_engine.core.models import PauseCondition, PauseReason


class PauseConditionSet:
    """
    Pause conditions keyed by reason, plus the controller-pause flag.

    Works on its own copy of the conditions; the caller writes the result
    back into the status it is building.
    """

    def __init__(
        self,
        conditions: Optional[Iterable[PauseCondition]] = None,
        controller_pause: bool = False,
    ):
        self._conditions: List[PauseCondition] = []
        for cond in conditions or ():
            if self.get(cond.reason) is None:
                self._conditions.append(cond)
        self.controller_pause = controller_pause

    @classmethod
    def from_status(cls, status) -> "PauseConditionSet":
        return cls(status.pause_conditions, status.controller_pause)

    # -------------------------
    # QUERIES
    # -------------------------

    def get(self, reason: PauseReason) -> Optional[PauseCondition]:
        for cond in self._conditions:
            if cond.reason == reason:
                return cond
        return None

    def has(self, reason: PauseReason) -> bool:
        return self.get(reason) is not None

    def is_paused(self) -> bool:
        return bool(self._conditions) or self.controller_pause

    def reasons(self) -> List[PauseReason]:
        return [cond.reason for cond in self._conditions]

    def conditions(self) -> List[PauseCondition]:
        return list(self._conditions)

    # -------------------------
    # MUTATIONS
    # -------------------------

    def add(self, reason: PauseReason, now: datetime) -> bool:
        """Add a condition. Returns False if one with that reason was already active."""
        if self.has(reason):
            return False
        self._conditions.append(PauseCondition(reason=reason, start_time=now))
        return True

    def remove(self, reason: PauseReason) -> bool:
        before = len(self._conditions)
        self._conditions = [c for c in self._conditions if c.reason != reason]
        return len(self._conditions) != before

    def clear(self) -> None:
        self._conditions = []
        self.controller_pause = False

    def resume(self, keep: Iterable[PauseReason] = ()) -> List[PauseReason]:
        """
        Clear the controller-pause flag and every condition not listed in `keep`.

        `keep` holds reasons still backed by an active analysis; those survive
        a resume. Returns the removed reasons.
        """
        keep = set(keep)
        removed = [c.reason for c in self._conditions if c.reason not in keep]
        self._conditions = [c for c in self._conditions if c.reason in keep]
        self.controller_pause = False
        return removed

    def __repr__(self) -> str:
        reasons = ",".join(r.value for r in self.reasons()) or "-"
        return f"<PauseConditionSet(reasons={reasons}, controller_pause={self.controller_pause})>"
