"""Step progressor - walks the canary steps of a rollout."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from rollout_engine.core.hashing import compute_hash
from rollout_engine.core.models import (
    AnalysisStep,
    CanaryStep,
    ExperimentStep,
    PauseStep,
    SetWeightStep,
)


def step_to_dict(step: CanaryStep) -> Dict[str, Any]:
    """Wire-shaped form of a step, used for fingerprinting."""
    if isinstance(step, SetWeightStep):
        return {"setWeight": step.weight}
    if isinstance(step, PauseStep):
        return {"pause": {} if step.duration is None else {"duration": step.duration}}
    if isinstance(step, AnalysisStep):
        return {"analysis": {"templates": list(step.templates)}}
    if isinstance(step, ExperimentStep):
        body: Dict[str, Any] = {"templates": list(step.templates)}
        if step.duration is not None:
            body["duration"] = step.duration
        return {"experiment": body}
    raise TypeError(f"Unknown step type: {type(step).__name__}")


def compute_step_hash(steps: Sequence[CanaryStep]) -> str:
    return compute_hash([step_to_dict(step) for step in steps])


@dataclass(frozen=True)
class StepProgress:
    """Result of walking the steps during one pass."""
    current_step_index: Optional[int]
    advanced: int = 0
    # True only in the pass that moved the index onto the terminal value
    completed_now: bool = False


class StepProgressor:
    """
    Tracks the current step index against a fingerprint of the step list.

    Index None means no steps. The terminal index equals len(steps).
    """

    def __init__(self, steps: Sequence[CanaryStep]):
        self.steps: List[CanaryStep] = list(steps)
        self.step_hash = compute_step_hash(self.steps)

    @property
    def terminal_index(self) -> Optional[int]:
        return len(self.steps) if self.steps else None

    def initial_index(self) -> Optional[int]:
        return 0 if self.steps else None

    def is_terminal(self, index: Optional[int]) -> bool:
        if not self.steps:
            return True
        return index is not None and index >= len(self.steps)

    def current_step(self, index: Optional[int]) -> Optional[CanaryStep]:
        if index is None or not 0 <= index < len(self.steps):
            return None
        return self.steps[index]

    def sync(
        self,
        index: Optional[int],
        stored_hash: str,
        *,
        revision_changed: bool = False,
    ) -> Tuple[Optional[int], bool]:
        """
        Reconcile the stored index with the current step list.

        Returns (index, reset). A changed step list or a new revision restarts
        progression from the first step.
        """
        if stored_hash != self.step_hash or revision_changed:
            return self.initial_index(), True
        if index is None:
            return self.initial_index(), False
        if self.steps and index > len(self.steps):
            return len(self.steps), False
        return index, False

    def advance(
        self,
        index: Optional[int],
        is_step_complete: Callable[[int, CanaryStep], bool],
    ) -> StepProgress:
        """Advance past every step whose exit condition holds, stopping at the first that blocks."""
        if not self.steps:
            return StepProgress(current_step_index=None)

        index = 0 if index is None else index
        advanced = 0

        while index < len(self.steps):
            step = self.steps[index]
            if not is_step_complete(index, step):
                return StepProgress(
                    current_step_index=index,
                    advanced=advanced,
                )
            index += 1
            advanced += 1

        return StepProgress(
            current_step_index=index,
            advanced=advanced,
            completed_now=advanced > 0,
        )
