#tests\test_state_machine.py

"""Test full reconciliation passes of the rollout state machine."""

from dataclasses import replace
from datetime import timedelta

import pytest

from rollout_engine.core import labels
from rollout_engine.core.models import (
    AnalysisOutcome,
    AnalysisPhase,
    AnalysisRunType,
    AnalysisStep,
    BackgroundAnalysis,
    CanaryStrategy,
    ConditionStatus,
    PauseReason,
    PauseStep,
    PingPongSpec,
    PingPongType,
    PodTemplate,
    RolloutConditionType,
    RolloutPhase,
    RolloutStatus,
    SetWeightStep,
)
from rollout_engine.core.replicasets import compute_pod_template_hash
from rollout_engine.core.state_machine import ReconcileConfig, RolloutStateMachine

from conftest import STABLE_HASH


def with_status(rollout, status):
    return replace(rollout, status=status)


def with_steps(rollout, steps, **strategy_kwargs):
    strategy = replace(rollout.spec.strategy, steps=list(steps), **strategy_kwargs)
    return replace(rollout, spec=replace(rollout.spec, strategy=strategy))


def step_outcome(phase, step_index=1, name="demo-analysis-1", message=""):
    return AnalysisOutcome(
        name=name,
        phase=phase,
        kind=AnalysisRunType.STEP,
        step_index=step_index,
        message=message,
    )


ANALYSIS_STEPS = [
    SetWeightStep(weight=20),
    AnalysisStep(templates=("success-rate",)),
    SetWeightStep(weight=50),
]


class TestCanaryScenarios:
    """Pause step, resume and promotion."""

    def test_pauses_at_pause_step_with_twenty_percent(self, machine, rollout, make_observation, now):
        """setWeight 20 then pause 10s: Paused at step 1 with 20% canary."""
        result = machine.reconcile(rollout, make_observation(canary=1), now)
        status = result.status

        assert status.phase == RolloutPhase.PAUSED
        assert status.message == PauseReason.CANARY_PAUSE_STEP.value
        assert [p.reason for p in status.pause_conditions] == [PauseReason.CANARY_PAUSE_STEP]
        assert status.controller_pause is True
        assert status.current_step_index == 1
        assert status.canary.weights.canary.weight == 20
        assert status.canary.weights.canary.service_name == "demo-canary"
        assert status.canary.weights.stable.weight == 80
        assert status.canary.weights.stable.pod_template_hash == STABLE_HASH

    def test_pass_events(self, machine, rollout, make_observation, now):
        """First pass reports advancing, pausing and the phase change."""
        result = machine.reconcile(rollout, make_observation(canary=1), now)

        types = [e.event_type for e in result.events]
        assert types == ["rollout.paused", "rollout.step_advanced", "rollout.phase_changed"]
        assert result.events[1].metadata == {"from_step": 0, "to_step": 1, "steps_completed": False}

    def test_step_advanced_reports_completion(self, machine, rollout, make_observation, now):
        """The pass that walks past the last step marks the steps completed."""
        first = machine.reconcile(rollout, make_observation(canary=1), now)

        result = machine.reconcile(
            with_status(rollout, first.status), make_observation(), now + timedelta(seconds=10),
        )

        advanced = [e for e in result.events if e.event_type == "rollout.step_advanced"]
        assert advanced[0].metadata == {"from_step": 1, "to_step": 2, "steps_completed": True}

    def test_resume_after_pause_promotes_to_healthy(self, machine, rollout, make_observation, now, latest_hash):
        """After 10s and a resume, steps complete, latest becomes stable, Healthy."""
        first = machine.reconcile(rollout, make_observation(canary=1), now)

        later = now + timedelta(seconds=10)
        result = machine.reconcile(
            with_status(rollout, first.status), make_observation(canary=5), later, resume=True,
        )
        status = result.status

        assert status.current_step_index == 2
        assert status.phase == RolloutPhase.HEALTHY
        assert status.message == ""
        assert status.stable_rs == latest_hash
        assert status.pause_conditions == []
        assert status.controller_pause is False
        assert status.canary.weights.canary.weight == 0
        assert "rollout.promoted" in [e.event_type for e in result.events]

    def test_promotion_stamps_previous_stable(self, machine, rollout, make_observation, now):
        """Outgoing stable replica set gets a scale-down deadline patch."""
        first = machine.reconcile(rollout, make_observation(canary=1), now)
        later = now + timedelta(seconds=10)

        result = machine.reconcile(with_status(rollout, first.status), make_observation(), later)

        assert len(result.replica_set_patches) == 1
        patch = result.replica_set_patches[0]
        assert patch.pod_template_hash == STABLE_HASH
        assert labels.get_scale_down_deadline(patch.annotations) == later + timedelta(seconds=30)

    def test_scale_down_delay_from_config(self, rollout, make_observation, now):
        """Controller-wide delay applies when the strategy does not set one."""
        machine = RolloutStateMachine(ReconcileConfig(scale_down_delay_seconds=120))
        first = machine.reconcile(rollout, make_observation(canary=1), now)
        later = now + timedelta(seconds=10)

        result = machine.reconcile(with_status(rollout, first.status), make_observation(), later)

        deadline = labels.get_scale_down_deadline(result.replica_set_patches[0].annotations)
        assert deadline == later + timedelta(seconds=120)

    def test_pause_holds_until_duration_elapses(self, machine, rollout, make_observation, now):
        """Pause step stays blocked before start + duration."""
        first = machine.reconcile(rollout, make_observation(canary=1), now)

        result = machine.reconcile(
            with_status(rollout, first.status), make_observation(canary=1), now + timedelta(seconds=5),
        )

        assert result.status.current_step_index == 1
        assert result.status.phase == RolloutPhase.PAUSED
        # First timestamp is kept
        assert result.status.pause_conditions[0].start_time == now

    def test_pause_completes_without_resume(self, machine, rollout, make_observation, now, latest_hash):
        """Timed pause completes on its own."""
        first = machine.reconcile(rollout, make_observation(canary=1), now)

        result = machine.reconcile(
            with_status(rollout, first.status), make_observation(), now + timedelta(seconds=10),
        )

        assert result.status.current_step_index == 2
        assert result.status.stable_rs == latest_hash

    def test_indefinite_pause_waits_for_resume(self, machine, rollout, make_observation, now):
        """Pause without a duration blocks until resumed."""
        rollout = with_steps(rollout, [SetWeightStep(weight=10), PauseStep()])
        first = machine.reconcile(rollout, make_observation(canary=1), now)

        held = machine.reconcile(
            with_status(rollout, first.status), make_observation(canary=1), now + timedelta(days=1),
        )
        assert held.status.current_step_index == 1
        assert held.status.phase == RolloutPhase.PAUSED

        resumed = machine.reconcile(
            with_status(rollout, held.status), make_observation(), now + timedelta(days=1), resume=True,
        )
        assert resumed.status.current_step_index == 2

    def test_zero_duration_pause_completes_immediately(self, machine, rollout, make_observation, now):
        rollout = with_steps(rollout, [SetWeightStep(weight=10), PauseStep(duration=0), PauseStep(duration="1h")])

        result = machine.reconcile(rollout, make_observation(canary=1), now)

        assert result.status.current_step_index == 2

    def test_externally_removed_pause_condition_counts_as_resumed(self, machine, rollout, make_observation, now):
        """Controller-pause flag set but pause condition gone: the step is done."""
        first = machine.reconcile(rollout, make_observation(canary=1), now)
        edited = replace(first.status, pause_conditions=[])

        result = machine.reconcile(with_status(rollout, edited), make_observation(), now + timedelta(seconds=1))

        assert result.status.current_step_index == 2

    def test_same_inputs_same_result(self, machine, rollout, make_observation, now):
        """A pass is deterministic."""
        observation = make_observation(canary=1)

        first = machine.reconcile(rollout, observation, now)
        second = machine.reconcile(rollout, observation, now)

        assert first.status == second.status
        assert first.replica_set_patches == second.replica_set_patches


class TestStepAnalysis:
    """Analysis steps gating progression."""

    @pytest.fixture
    def analysis_rollout(self, rollout):
        return with_steps(rollout, ANALYSIS_STEPS)

    def test_running_analysis_blocks(self, machine, analysis_rollout, make_observation, now):
        result = machine.reconcile(
            analysis_rollout, make_observation(canary=1, analysis=[step_outcome(AnalysisPhase.RUNNING)]), now,
        )

        assert result.status.current_step_index == 1
        assert result.status.phase == RolloutPhase.PROGRESSING
        assert result.status.canary.current_step_analysis_run_status.status == AnalysisPhase.RUNNING

    def test_inconclusive_analysis_pauses(self, machine, analysis_rollout, make_observation, now):
        """Inconclusive at step 1: InconclusiveAnalysisRun added, Paused, index unchanged."""
        first = machine.reconcile(
            analysis_rollout, make_observation(canary=1, analysis=[step_outcome(AnalysisPhase.RUNNING)]), now,
        )

        result = machine.reconcile(
            with_status(analysis_rollout, first.status),
            make_observation(canary=1, analysis=[step_outcome(AnalysisPhase.INCONCLUSIVE)]),
            now + timedelta(minutes=1),
        )
        status = result.status

        assert status.phase == RolloutPhase.PAUSED
        assert [p.reason for p in status.pause_conditions] == [PauseReason.INCONCLUSIVE_ANALYSIS]
        assert status.current_step_index == 1
        assert status.canary.weights.canary.weight == 20

    def test_resume_acknowledges_inconclusive(self, machine, analysis_rollout, make_observation, now, latest_hash):
        observation = make_observation(analysis=[step_outcome(AnalysisPhase.INCONCLUSIVE)])
        paused = machine.reconcile(analysis_rollout, observation, now)

        result = machine.reconcile(
            with_status(analysis_rollout, paused.status), observation, now + timedelta(minutes=1), resume=True,
        )

        assert result.status.current_step_index == 3
        assert result.status.pause_conditions == []
        assert result.status.stable_rs == latest_hash

    def test_successful_analysis_advances(self, machine, analysis_rollout, make_observation, now):
        result = machine.reconcile(
            analysis_rollout, make_observation(analysis=[step_outcome(AnalysisPhase.SUCCESSFUL)]), now,
        )

        assert result.status.current_step_index == 3
        assert result.status.phase == RolloutPhase.HEALTHY

    def test_failed_analysis_aborts(self, machine, analysis_rollout, make_observation, now, latest_hash):
        """Failed analysis: Degraded, traffic back to stable, no advancement."""
        failed = step_outcome(AnalysisPhase.FAILED, message="error rate 12%")

        result = machine.reconcile(analysis_rollout, make_observation(canary=1, analysis=[failed]), now)
        status = result.status

        assert status.aborted is True
        assert status.aborted_at == now
        assert status.phase == RolloutPhase.DEGRADED
        assert status.message.startswith("RolloutAborted: ")
        assert latest_hash in status.abort_message
        assert "error rate 12%" in status.abort_message
        assert status.current_step_index == 1
        assert status.canary.weights.canary.weight == 0
        progressing = status.condition(RolloutConditionType.PROGRESSING)
        assert progressing.status == ConditionStatus.FALSE
        assert "rollout.aborted" in [e.event_type for e in result.events]

    def test_abort_persists_across_passes(self, machine, analysis_rollout, make_observation, now):
        failed = make_observation(canary=1, analysis=[step_outcome(AnalysisPhase.FAILED)])
        aborted = machine.reconcile(analysis_rollout, failed, now)

        result = machine.reconcile(
            with_status(analysis_rollout, aborted.status), make_observation(canary=1), now + timedelta(minutes=5),
        )

        assert result.status.aborted is True
        assert result.status.aborted_at == now
        assert result.status.phase == RolloutPhase.DEGRADED

    def test_resume_retries_aborted_rollout(self, machine, analysis_rollout, make_observation, now):
        """Resume clears the abort and restarts from the first step."""
        failed = make_observation(canary=1, analysis=[step_outcome(AnalysisPhase.FAILED)])
        aborted = machine.reconcile(analysis_rollout, failed, now)

        result = machine.reconcile(
            with_status(analysis_rollout, aborted.status),
            make_observation(canary=1),
            now + timedelta(minutes=5),
            resume=True,
        )

        assert result.status.aborted is False
        assert result.status.abort_message == ""
        assert result.status.current_step_index == 1
        assert result.status.phase == RolloutPhase.PROGRESSING


class TestBackgroundAnalysis:

    def test_inconclusive_background_blocks_and_survives_resume(self, machine, rollout, make_observation, now):
        rollout = with_steps(
            rollout, rollout.spec.strategy.steps,
            analysis=BackgroundAnalysis(templates=("latency",), start_step=0),
        )
        background = AnalysisOutcome(
            name="demo-bg", phase=AnalysisPhase.INCONCLUSIVE, kind=AnalysisRunType.BACKGROUND,
        )
        observation = make_observation(canary=1, analysis=[background])

        paused = machine.reconcile(rollout, observation, now)
        assert paused.status.current_step_index == 0
        assert paused.status.phase == RolloutPhase.PAUSED
        assert paused.status.canary.current_background_analysis_run_status.name == "demo-bg"

        result = machine.reconcile(with_status(rollout, paused.status), observation, now, resume=True)
        assert result.status.current_step_index == 0
        assert [p.reason for p in result.status.pause_conditions] == [PauseReason.INCONCLUSIVE_ANALYSIS]

    def test_background_applies_from_start_step(self, machine, rollout, make_observation, now):
        rollout = with_steps(
            rollout, rollout.spec.strategy.steps,
            analysis=BackgroundAnalysis(templates=("latency",), start_step=1),
        )
        background = AnalysisOutcome(
            name="demo-bg", phase=AnalysisPhase.FAILED, kind=AnalysisRunType.BACKGROUND,
        )
        observation = make_observation(canary=1, analysis=[background])

        first = machine.reconcile(rollout, observation, now)
        assert first.status.aborted is False
        assert first.status.current_step_index == 1

        second = machine.reconcile(with_status(rollout, first.status), observation, now + timedelta(seconds=1))
        assert second.status.aborted is True
        assert second.status.pause_conditions == []

    def test_inconclusive_hold_does_not_skip_timed_pause(self, machine, rollout, make_observation, now):
        """A pause step held by inconclusive background analysis still runs its full duration."""
        rollout = with_steps(
            rollout, [PauseStep(duration="1h")],
            analysis=BackgroundAnalysis(templates=("latency",), start_step=0),
        )
        background = AnalysisOutcome(
            name="demo-bg", phase=AnalysisPhase.INCONCLUSIVE, kind=AnalysisRunType.BACKGROUND,
        )

        held = machine.reconcile(rollout, make_observation(canary=1, analysis=[background]), now)
        assert held.status.current_step_index == 0
        assert held.status.controller_pause is True
        assert [p.reason for p in held.status.pause_conditions] == [PauseReason.INCONCLUSIVE_ANALYSIS]

        later = now + timedelta(seconds=60)
        passed = replace(background, phase=AnalysisPhase.SUCCESSFUL)
        result = machine.reconcile(with_status(rollout, held.status), make_observation(canary=1, analysis=[passed]), later)
        status = result.status

        assert status.current_step_index == 0
        assert status.phase == RolloutPhase.PAUSED
        assert [p.reason for p in status.pause_conditions] == [PauseReason.CANARY_PAUSE_STEP]
        assert status.pause_conditions[0].start_time == later
        assert status.stable_rs == STABLE_HASH


class TestPrePromotion:

    def test_pre_promotion_analysis_gates_stable_switch(self, machine, rollout, make_observation, now, latest_hash):
        rollout = with_steps(rollout, [SetWeightStep(weight=50)])
        pending = AnalysisOutcome(name="pre", phase=AnalysisPhase.RUNNING, kind=AnalysisRunType.PRE_PROMOTION)

        waiting = machine.reconcile(rollout, make_observation(analysis=[pending]), now)
        assert waiting.status.current_step_index == 1
        assert waiting.status.stable_rs == STABLE_HASH
        assert waiting.status.canary.weights.canary.weight == 100
        assert waiting.status.phase == RolloutPhase.PROGRESSING

        passed = replace(pending, phase=AnalysisPhase.SUCCESSFUL)
        result = machine.reconcile(with_status(rollout, waiting.status), make_observation(analysis=[passed]), now)
        assert result.status.stable_rs == latest_hash

    def test_resume_acknowledges_inconclusive_pre_promotion(self, machine, rollout, make_observation, now, latest_hash):
        rollout = with_steps(rollout, [SetWeightStep(weight=20)])
        inconclusive = AnalysisOutcome(name="pre", phase=AnalysisPhase.INCONCLUSIVE, kind=AnalysisRunType.PRE_PROMOTION)
        observation = make_observation(analysis=[inconclusive])

        held = machine.reconcile(rollout, observation, now)
        assert held.status.phase == RolloutPhase.PAUSED
        assert held.status.stable_rs == STABLE_HASH
        assert [p.reason for p in held.status.pause_conditions] == [PauseReason.INCONCLUSIVE_ANALYSIS]

        result = machine.reconcile(
            with_status(rollout, held.status), observation, now + timedelta(minutes=1), resume=True,
        )

        assert result.status.stable_rs == latest_hash
        assert result.status.pause_conditions == []
        assert result.status.controller_pause is False
        assert "rollout.promoted" in [e.event_type for e in result.events]

    def test_inconclusive_pre_promotion_holds_without_resume(self, machine, rollout, make_observation, now):
        rollout = with_steps(rollout, [SetWeightStep(weight=20)])
        inconclusive = AnalysisOutcome(name="pre", phase=AnalysisPhase.INCONCLUSIVE, kind=AnalysisRunType.PRE_PROMOTION)
        observation = make_observation(analysis=[inconclusive])

        held = machine.reconcile(rollout, observation, now)
        result = machine.reconcile(with_status(rollout, held.status), observation, now + timedelta(hours=1))

        assert result.status.stable_rs == STABLE_HASH
        assert result.status.phase == RolloutPhase.PAUSED


class TestStepProgressReset:

    def test_step_edit_resets_to_first_step(self, machine, rollout, make_observation, now):
        first = machine.reconcile(rollout, make_observation(canary=1), now)
        assert first.status.current_step_index == 1

        edited = with_steps(rollout, [PauseStep(), SetWeightStep(weight=40)])
        later = now + timedelta(seconds=3)
        result = machine.reconcile(with_status(edited, first.status), make_observation(canary=1), later)

        assert result.status.current_step_index == 0
        assert result.status.pause_conditions[0].start_time == later
        assert result.status.current_step_hash != first.status.current_step_hash
        assert "rollout.steps_reset" in [e.event_type for e in result.events]

    def test_new_revision_resets_progress(self, machine, rollout, make_observation, now, latest_hash):
        first = machine.reconcile(rollout, make_observation(canary=1), now)

        template = PodTemplate(labels={"app": "demo"}, spec={"containers": [{"name": "app", "image": "demo:v3"}]})
        updated = replace(rollout, spec=replace(rollout.spec, template=template))
        later = now + timedelta(seconds=3)
        result = machine.reconcile(with_status(updated, first.status), make_observation(canary=1), later)

        assert result.status.current_pod_hash == compute_pod_template_hash(template)
        assert result.status.current_pod_hash != latest_hash
        assert result.status.current_step_index == 1
        assert result.status.pause_conditions[0].start_time == later


class TestSkippedSteps:

    def test_first_deploy_promotes_immediately(self, machine, rollout, make_observation, now, latest_hash):
        fresh = with_status(rollout, RolloutStatus())

        result = machine.reconcile(fresh, make_observation(stable=0), now)

        assert result.status.stable_rs == latest_hash
        assert result.status.current_step_index == 2
        assert result.status.phase == RolloutPhase.HEALTHY
        assert result.replica_set_patches == []

    def test_rollback_to_stable_skips_steps(self, machine, rollout, make_observation, now, latest_hash):
        status = RolloutStatus(stable_rs=latest_hash, current_pod_hash="someotherhash", current_step_index=1)

        result = machine.reconcile(with_status(rollout, status), make_observation(stable=0), now)

        assert result.status.current_step_index == 2
        assert result.status.pause_conditions == []
        assert result.status.phase == RolloutPhase.HEALTHY


class TestPhaseOutcomes:

    def test_spec_paused(self, machine, rollout, make_observation, now):
        rollout = replace(rollout, spec=replace(rollout.spec, paused=True))

        result = machine.reconcile(rollout, make_observation(canary=0), now)

        assert result.status.phase == RolloutPhase.PAUSED
        assert result.status.message == "manually paused"
        assert result.status.current_step_index == 0

    def test_invalid_spec_degrades_without_moving(self, machine, rollout, make_observation, now):
        rollout = with_steps(rollout, [SetWeightStep(weight=150)])

        result = machine.reconcile(rollout, make_observation(canary=0), now)
        status = result.status

        assert status.phase == RolloutPhase.DEGRADED
        assert status.message.startswith("InvalidSpec: ")
        assert "setWeight" in status.message
        assert status.current_step_index is None
        invalid = status.condition(RolloutConditionType.INVALID_SPEC)
        assert invalid.status == ConditionStatus.TRUE
        assert [e.event_type for e in result.events][0] == "rollout.invalid_spec"

    def test_invalid_duration_degrades(self, machine, rollout, make_observation, now):
        rollout = with_steps(rollout, [PauseStep(duration="not-a-duration")])

        result = machine.reconcile(rollout, make_observation(canary=0), now)

        assert result.status.phase == RolloutPhase.DEGRADED
        assert "pause.duration" in result.status.message

    def test_out_of_range_integer_duration_degrades(self, machine, rollout, make_observation, now):
        """An integer pause beyond int32 is an InvalidSpec, on every pass."""
        rollout = with_steps(rollout, [SetWeightStep(weight=10), PauseStep(duration=10 ** 12)])

        first = machine.reconcile(rollout, make_observation(canary=0), now)
        second = machine.reconcile(with_status(rollout, first.status), make_observation(canary=1), now + timedelta(seconds=1))

        for result in (first, second):
            assert result.status.phase == RolloutPhase.DEGRADED
            assert "steps[1].pause.duration is invalid" in result.status.message

    def test_fixed_spec_clears_invalid_condition(self, machine, rollout, make_observation, now):
        broken = with_steps(rollout, [SetWeightStep(weight=150)])
        invalid = machine.reconcile(broken, make_observation(canary=0), now)

        result = machine.reconcile(with_status(rollout, invalid.status), make_observation(canary=1), now)

        assert result.status.condition(RolloutConditionType.INVALID_SPEC) is None
        assert result.status.phase == RolloutPhase.PAUSED

    def test_pause_beats_replica_failure(self, machine, rollout, make_observation, now):
        """Active pause condition plus replica failure reports Paused."""
        result = machine.reconcile(rollout, make_observation(canary=0, replica_failure="quota exceeded"), now)

        assert result.status.phase == RolloutPhase.PAUSED
        failure = result.status.condition(RolloutConditionType.REPLICA_FAILURE)
        assert failure.status == ConditionStatus.TRUE

    def test_replica_failure_degrades(self, machine, rollout, make_observation, now):
        rollout = with_steps(rollout, ANALYSIS_STEPS)
        observation = make_observation(
            canary=0, replica_failure="quota exceeded", analysis=[step_outcome(AnalysisPhase.RUNNING)],
        )

        result = machine.reconcile(rollout, observation, now)

        assert result.status.phase == RolloutPhase.DEGRADED
        assert result.status.message == "ReplicaSetCreateError: quota exceeded"

    def test_replica_counts_and_selector(self, machine, rollout, make_observation, now):
        result = machine.reconcile(rollout, make_observation(canary=2, stable=5), now)
        status = result.status

        assert status.replicas == 7
        assert status.updated_replicas == 2
        assert status.available_replicas == 7
        assert status.hpa_replicas == 7
        assert status.selector == "app=demo"
        assert status.observed_generation == rollout.generation


class TestPingPong:

    @pytest.fixture
    def ping_pong_rollout(self, rollout):
        strategy = CanaryStrategy(
            ping_pong=PingPongSpec(ping_service="demo-ping", pong_service="demo-pong"),
            steps=[SetWeightStep(weight=30), PauseStep(duration="10s")],
        )
        return replace(rollout, spec=replace(rollout.spec, strategy=strategy))

    def test_roles_swap_on_promotion(self, machine, ping_pong_rollout, make_observation, now):
        first = machine.reconcile(ping_pong_rollout, make_observation(canary=1), now)
        weights = first.status.canary.weights

        assert first.status.canary.stable_ping_pong == PingPongType.PING
        assert weights.canary.service_name == "demo-pong"
        assert weights.stable.service_name == "demo-ping"

        promoted = machine.reconcile(
            with_status(ping_pong_rollout, first.status), make_observation(), now + timedelta(seconds=10),
        )

        assert promoted.status.canary.stable_ping_pong == PingPongType.PONG
        assert promoted.status.canary.weights.stable.service_name == "demo-pong"
