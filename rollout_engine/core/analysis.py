"""Analysis gate - turns analysis outcomes into progression signals."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Set

from rollout_engine.core.models import (
    AnalysisOutcome,
    AnalysisPhase,
    AnalysisRunStatus,
    AnalysisRunType,
    BackgroundAnalysis,
    PauseReason,
)


class GateSignal(Enum):
    """What the rollout should do given the relevant outcomes."""
    NONE = "NONE"            # nothing reported (yet)
    WAIT = "WAIT"            # still running
    PASS = "PASS"            # promote / advance
    INCONCLUSIVE = "INCONCLUSIVE"  # hold for manual intervention
    ABORT = "ABORT"          # fatal


# Higher wins when several outcomes apply to the same gate
_PRECEDENCE = {
    GateSignal.NONE: 0,
    GateSignal.PASS: 1,
    GateSignal.WAIT: 2,
    GateSignal.INCONCLUSIVE: 3,
    GateSignal.ABORT: 4,
}


def signal_for(phase: AnalysisPhase) -> GateSignal:
    if not phase.is_completed():
        return GateSignal.WAIT
    if phase == AnalysisPhase.SUCCESSFUL:
        return GateSignal.PASS
    if phase == AnalysisPhase.INCONCLUSIVE:
        return GateSignal.INCONCLUSIVE
    return GateSignal.ABORT


@dataclass(frozen=True)
class GateDecision:
    signal: GateSignal
    outcome: Optional[AnalysisOutcome] = None

    def run_status(self) -> Optional[AnalysisRunStatus]:
        if self.outcome is None:
            return None
        return AnalysisRunStatus(
            name=self.outcome.name,
            status=self.outcome.phase,
            message=self.outcome.message,
        )

    def abort_message(self) -> str:
        if self.outcome is None:
            return ""
        message = f"analysis run '{self.outcome.name}' {self.outcome.phase.value}"
        if self.outcome.message:
            message += f": {self.outcome.message}"
        return message


NO_DECISION = GateDecision(GateSignal.NONE)


def combine(outcomes: Iterable[AnalysisOutcome]) -> GateDecision:
    decision = NO_DECISION
    for outcome in outcomes:
        signal = signal_for(outcome.phase)
        if _PRECEDENCE[signal] > _PRECEDENCE[decision.signal]:
            decision = GateDecision(signal, outcome)
    return decision


class AnalysisGate:
    """
    Filters reported outcomes down to the ones gating the current step.

    Step analyses gate the step whose index they carry; background analysis
    applies from its start step on; pre-promotion analysis gates the stable
    switch.
    """

    def __init__(
        self,
        outcomes: Iterable[AnalysisOutcome],
        background: Optional[BackgroundAnalysis] = None,
    ):
        self._outcomes: List[AnalysisOutcome] = list(outcomes)
        self._background = background

    def _of_kind(self, kind: AnalysisRunType) -> List[AnalysisOutcome]:
        return [o for o in self._outcomes if o.kind == kind]

    def for_step(self, index: int) -> GateDecision:
        return combine(
            o for o in self._of_kind(AnalysisRunType.STEP) if o.step_index == index
        )

    def background(self, index: Optional[int]) -> GateDecision:
        if self._background is None:
            return NO_DECISION
        if index is not None and index < self._background.start_step:
            return NO_DECISION
        return combine(self._of_kind(AnalysisRunType.BACKGROUND))

    def pre_promotion(self) -> GateDecision:
        return combine(self._of_kind(AnalysisRunType.PRE_PROMOTION))

    def blocking_reasons(self, index: Optional[int]) -> Set[PauseReason]:
        """Pause reasons a resume cannot clear, because analysis still backs them."""
        reasons: Set[PauseReason] = set()
        if self.background(index).signal == GateSignal.INCONCLUSIVE:
            reasons.add(PauseReason.INCONCLUSIVE_ANALYSIS)
        return reasons
