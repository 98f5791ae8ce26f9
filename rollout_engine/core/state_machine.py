#rollout_engine\core\state_machine.py
"""
Rollout state machine - one reconciliation pass.

Given a rollout (spec + previous status), what the controller observed about
its replica sets and analysis runs, and the current time, compute the next
status. The pass has no hidden state and performs no I/O: the same inputs
always produce the same result, so a pass can be abandoned and recomputed.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import List, Optional

from rollout_engine.core import conditions as cond
from rollout_engine.core.analysis import AnalysisGate, GateDecision, GateSignal
from rollout_engine.core.duration import resolve_duration_seconds
from rollout_engine.core.events_model import RolloutEvent
from rollout_engine.core.models import (
    CanaryStatus,
    CanaryStep,
    ConditionStatus,
    GATING_STEPS,
    Observation,
    PauseReason,
    PauseStep,
    PingPongType,
    Rollout,
    RolloutConditionType,
    RolloutStatus,
    SetWeightStep,
)
from rollout_engine.core.pause import PauseConditionSet
from rollout_engine.core.phase import ReplicaCounts, compute_conditions, evaluate_phase
from rollout_engine.core.replicasets import (
    DEFAULT_SCALE_DOWN_DELAY_SECONDS,
    ReplicaSetHashRegistry,
    ReplicaSetPatch,
)
from rollout_engine.core.steps import StepProgressor
from rollout_engine.core.traffic import TrafficWeightResolver
from rollout_engine.core.validation import validate_rollout_spec


@dataclass(frozen=True)
class ReconcileConfig:
    """Controller-wide knobs for a pass."""
    scale_down_delay_seconds: int = DEFAULT_SCALE_DOWN_DELAY_SECONDS


@dataclass(frozen=True)
class ReconcileResult:
    """New status plus the side outputs the caller must act on."""
    status: RolloutStatus
    replica_set_patches: List[ReplicaSetPatch] = field(default_factory=list)
    events: List[RolloutEvent] = field(default_factory=list)


def selector_string(selector) -> str:
    if not selector:
        return ""
    return ",".join(f"{k}={v}" for k, v in sorted(selector.items()))


class RolloutStateMachine:
    """Computes the next rollout status."""

    def __init__(self, config: Optional[ReconcileConfig] = None):
        self._config = config or ReconcileConfig()

    def reconcile(
        self,
        rollout: Rollout,
        observation: Optional[Observation],
        now: datetime,
        *,
        resume: bool = False,
    ) -> ReconcileResult:
        """
        Run one pass.

        Args:
            rollout: Rollout as read from the store (not modified)
            observation: Replica set and analysis state seen before the pass
            now: Time of the pass
            resume: External resume signal (operator promoted the rollout)
        """
        return _ReconcilePass(rollout, observation or Observation(), now, self._config, resume).run()


class _ReconcilePass:
    """Working state of a single pass. Discarded when the pass ends."""

    def __init__(self, rollout: Rollout, observation: Observation, now: datetime, config: ReconcileConfig, resume: bool):
        self.rollout = rollout
        self.spec = rollout.spec
        self.prev = rollout.status
        self.observation = observation
        self.now = now
        self.key = rollout.key
        self.events: List[RolloutEvent] = []

        strategy = self.spec.strategy
        delay = strategy.scale_down_delay_seconds
        if delay is None:
            delay = config.scale_down_delay_seconds

        self.registry = ReplicaSetHashRegistry.for_template(
            self.prev.stable_rs, self.spec.template, self.prev.collision_count, delay,
        )
        self.pod_hash = self.registry.latest_rs
        self.progressor = StepProgressor(strategy.steps)
        self.pauses = PauseConditionSet.from_status(self.prev)
        self.gate = AnalysisGate(observation.analysis, strategy.analysis)

        self.aborted = self.prev.aborted
        self.aborted_at = self.prev.aborted_at
        self.abort_message = self.prev.abort_message

        self.step_status = self.prev.canary.current_step_analysis_run_status
        self.background_status = self.prev.canary.current_background_analysis_run_status

        self.stable_side: Optional[PingPongType] = None
        if strategy.ping_pong is not None:
            self.stable_side = self.prev.canary.stable_ping_pong or PingPongType.PING

        self.resume_pending = resume
        # Controller pause left set with no condition behind it: an operator
        # removed the pause step condition to skip the step
        self.pause_cleared = self.prev.controller_pause and not self.prev.pause_conditions
        self.start_index: Optional[int] = None
        self.inconclusive = False

    # -------------------------
    # PASS
    # -------------------------

    def run(self) -> ReconcileResult:
        errors = validate_rollout_spec(self.spec)
        if errors:
            return self._invalid_spec("; ".join(errors))

        index = self._sync_steps()

        if self.resume_pending:
            index = self._resume(index)

        self.start_index = index

        if not self.aborted:
            self._check_background(index)

        if not self.aborted and not self.spec.paused and not self.inconclusive:
            progress = self.progressor.advance(index, self._step_complete)
            if progress.advanced:
                self.events.append(RolloutEvent.step_advanced(
                    self.key, self.now, index, progress.current_step_index, progress.completed_now,
                ))
            index = progress.current_step_index

        patches: List[ReplicaSetPatch] = []
        if self.aborted:
            self.pauses.clear()
            self.inconclusive = False
        elif not self.spec.paused and self.progressor.is_terminal(index) and not self.registry.is_promoted():
            patches = self._promote(index)

        if self.inconclusive:
            if self.pauses.add(PauseReason.INCONCLUSIVE_ANALYSIS, self.now):
                self.events.append(RolloutEvent.paused(
                    self.key, self.now, PauseReason.INCONCLUSIVE_ANALYSIS.value,
                ))
            self.pauses.controller_pause = True
        else:
            self.pauses.remove(PauseReason.INCONCLUSIVE_ANALYSIS)

        if not self.spec.paused and not self.pauses.conditions():
            self.pauses.controller_pause = False

        return self._finish(index, patches)

    # -------------------------
    # STAGES
    # -------------------------

    def _sync_steps(self) -> Optional[int]:
        """Drop stale progress, then skip steps when there is nothing to canary."""
        revision_changed = bool(self.prev.current_pod_hash) and self.prev.current_pod_hash != self.pod_hash
        index, reset = self.progressor.sync(
            self.prev.current_step_index,
            self.prev.current_step_hash,
            revision_changed=revision_changed,
        )
        if reset:
            self.pauses.clear()
            self.aborted = False
            self.aborted_at = None
            self.abort_message = ""
            self.step_status = None
            self.background_status = None
            if self.prev.current_step_hash:
                self.events.append(RolloutEvent.steps_reset(
                    self.key, self.now, self.progressor.step_hash, self.pod_hash,
                ))

        # First deployment, or the template went back to the stable one
        if not self.registry.has_stable() or self.registry.is_promoted():
            if not self.progressor.is_terminal(index):
                index = self.progressor.terminal_index
                self.pauses.clear()

        return index

    def _resume(self, index: Optional[int]) -> Optional[int]:
        if self.aborted:
            # Retry from the first step
            self.aborted = False
            self.aborted_at = None
            self.abort_message = ""
            self.step_status = None
            if not self.registry.is_promoted():
                index = self.progressor.initial_index()

        removed = self.pauses.resume(keep=self.gate.blocking_reasons(index))
        self.events.append(RolloutEvent.resumed(
            self.key, self.now, [reason.value for reason in removed],
        ))
        return index

    def _check_background(self, index: Optional[int]) -> None:
        decision = self.gate.background(index)
        if decision.outcome is not None:
            self.background_status = decision.run_status()
        if decision.signal == GateSignal.ABORT:
            self._abort(decision)
        elif decision.signal == GateSignal.INCONCLUSIVE:
            self.inconclusive = True

    def _step_complete(self, index: int, step: CanaryStep) -> bool:
        if isinstance(step, SetWeightStep):
            return self._leave_step()

        if isinstance(step, PauseStep):
            return self._pause_step_complete(index, step)

        if isinstance(step, GATING_STEPS):
            decision = self.gate.for_step(index)
            if decision.outcome is not None:
                self.step_status = decision.run_status()

            if decision.signal == GateSignal.ABORT:
                self._abort(decision)
                return False
            if decision.signal == GateSignal.INCONCLUSIVE:
                # A resume acknowledges the inconclusive result
                if self._consume_resume(index):
                    return self._leave_step()
                self.inconclusive = True
                return False
            if decision.signal == GateSignal.PASS:
                return self._leave_step()
            return False

        return False

    def _pause_step_complete(self, index: int, step: PauseStep) -> bool:
        if self._consume_resume(index):
            return self._leave_step()

        pause = self.pauses.get(PauseReason.CANARY_PAUSE_STEP)
        if pause is None and self.pause_cleared and index == self.start_index:
            self.pause_cleared = False
            return self._leave_step()

        if step.duration is not None and resolve_duration_seconds(step.duration) == 0:
            return self._leave_step()

        if pause is None:
            self.pauses.add(PauseReason.CANARY_PAUSE_STEP, self.now)
            self.pauses.controller_pause = True
            self.events.append(RolloutEvent.paused(
                self.key, self.now, PauseReason.CANARY_PAUSE_STEP.value,
            ))
            return False

        if step.duration is None:
            # Indefinite pause, waits for a resume
            return False

        seconds = resolve_duration_seconds(step.duration)
        if self.now >= pause.start_time + timedelta(seconds=seconds):
            return self._leave_step()
        return False

    def _consume_resume(self, index: Optional[int]) -> bool:
        if self.resume_pending and index == self.start_index:
            self.resume_pending = False
            return True
        return False

    def _leave_step(self) -> bool:
        self.pauses.remove(PauseReason.CANARY_PAUSE_STEP)
        self.pauses.controller_pause = False
        self.step_status = None
        return True

    def _abort(self, decision: GateDecision) -> None:
        if self.aborted:
            return
        self.aborted = True
        self.aborted_at = self.now
        self.abort_message = f"Rollout aborted update to revision {self.pod_hash}: {decision.abort_message()}"
        self.events.append(RolloutEvent.aborted(self.key, self.now, self.abort_message))

    def _promote(self, index: Optional[int]) -> List[ReplicaSetPatch]:
        decision = self.gate.pre_promotion()
        if decision.signal == GateSignal.ABORT:
            self._abort(decision)
            self.pauses.clear()
            return []
        if decision.signal == GateSignal.INCONCLUSIVE and not self._consume_resume(index):
            self.inconclusive = True
            return []
        if decision.signal == GateSignal.WAIT:
            return []

        promotion = self.registry.promote(self.now)
        if promotion.previous_stable_rs and self.stable_side is not None:
            self.stable_side = self.stable_side.other()
        self.events.append(RolloutEvent.promoted(
            self.key, self.now, promotion.stable_rs, promotion.previous_stable_rs,
        ))
        return promotion.patches

    # -------------------------
    # STATUS
    # -------------------------

    def _counts(self, patches: List[ReplicaSetPatch]) -> ReplicaCounts:
        replica_sets = self.observation.replica_sets
        latest = self.observation.replica_set(self.pod_hash)
        return ReplicaCounts(
            desired=self.spec.desired_replicas(),
            replicas=sum(rs.replicas for rs in replica_sets),
            updated=latest.replicas if latest else 0,
            ready=sum(rs.ready_replicas for rs in replica_sets),
            available=sum(rs.available_replicas for rs in replica_sets),
            updated_available=latest.available_replicas if latest else 0,
            old_pending=self.registry.old_replicas_pending(self.observation, self.now, patches),
            failure=self.observation.replica_failure,
        )

    def _finish(self, index: Optional[int], patches: List[ReplicaSetPatch]) -> ReconcileResult:
        counts = self._counts(patches)

        weights = TrafficWeightResolver(self.spec.strategy).resolve(
            step_index=index,
            latest_hash=self.pod_hash,
            stable_hash=self.registry.stable_rs,
            stable_side=self.stable_side,
            aborted=self.aborted,
            promoted=self.registry.is_promoted(),
        )

        status = replace(
            self.prev,
            conditions=cond.remove_condition(self.prev.conditions, RolloutConditionType.INVALID_SPEC),
            pause_conditions=self.pauses.conditions(),
            controller_pause=self.pauses.controller_pause,
            replicas=counts.replicas,
            updated_replicas=counts.updated,
            ready_replicas=counts.ready,
            available_replicas=counts.available,
            hpa_replicas=counts.replicas,
            current_step_index=index,
            current_step_hash=self.progressor.step_hash,
            current_pod_hash=self.pod_hash,
            stable_rs=self.registry.stable_rs,
            selector=selector_string(self.spec.selector),
            canary=CanaryStatus(
                weights=weights,
                current_step_analysis_run_status=self.step_status,
                current_background_analysis_run_status=self.background_status,
                stable_ping_pong=self.stable_side,
            ),
            aborted=self.aborted,
            aborted_at=self.aborted_at,
            abort_message=self.abort_message,
            observed_generation=self.rollout.generation,
        )

        phase, message = evaluate_phase(
            self.spec, status, counts,
            generation=self.rollout.generation,
            steps_done=self.progressor.is_terminal(index),
        )
        status = replace(
            status,
            phase=phase,
            message=message,
            conditions=compute_conditions(self.spec, status, counts, phase, self.now),
        )

        if phase != self.prev.phase:
            self.events.append(RolloutEvent.phase_changed(
                self.key, self.now, self.prev.phase, phase, message,
            ))

        return ReconcileResult(status=status, replica_set_patches=patches, events=self.events)

    def _invalid_spec(self, message: str) -> ReconcileResult:
        previous = self.prev.condition(RolloutConditionType.INVALID_SPEC)
        if previous is None or previous.status != ConditionStatus.TRUE or previous.message != message:
            self.events.append(RolloutEvent.invalid_spec(self.key, self.now, message))

        status = replace(
            self.prev,
            conditions=cond.set_condition(self.prev.conditions, cond.new_condition(
                RolloutConditionType.INVALID_SPEC, ConditionStatus.TRUE,
                cond.INVALID_SPEC_REASON, message, self.now,
            )),
            observed_generation=self.rollout.generation,
        )
        phase, phase_message = evaluate_phase(
            self.spec, status, self._counts([]),
            generation=self.rollout.generation,
        )
        status = replace(status, phase=phase, message=phase_message)

        if phase != self.prev.phase:
            self.events.append(RolloutEvent.phase_changed(
                self.key, self.now, self.prev.phase, phase, phase_message,
            ))

        return ReconcileResult(status=status, events=self.events)
