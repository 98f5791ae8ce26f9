#rollout_engine\core\validation.py
from typing import List

from rollout_engine.core.duration import is_valid_duration
from rollout_engine.core.models import (
    AnalysisStep,
    ExperimentStep,
    PauseStep,
    RolloutSpec,
    SetWeightStep,
)

MAX_STICKINESS_SECONDS = 604800  # 7 days


def validate_rollout_spec(spec: RolloutSpec) -> List[str]:
    """Return every configuration error found in `spec` (empty when valid)."""
    errors: List[str] = []

    # -------------------------
    # Replicas / template
    # -------------------------
    if spec.replicas is not None and spec.replicas < 0:
        errors.append("spec.replicas must be >= 0")

    if spec.min_ready_seconds < 0:
        errors.append("spec.minReadySeconds must be >= 0")

    if spec.revision_history_limit is not None and spec.revision_history_limit < 0:
        errors.append("spec.revisionHistoryLimit must be >= 0")

    if not spec.template_resolved_from_ref and spec.empty_template():
        errors.append("spec.template must not be empty")

    # -------------------------
    # Selector
    # -------------------------
    if not spec.selector_resolved_from_ref:
        if not spec.selector:
            errors.append("spec.selector is required")
        elif not spec.template_resolved_from_ref:
            for key, value in spec.selector.items():
                if spec.template.labels.get(key) != value:
                    errors.append(
                        f"spec.selector does not match template labels ({key}={value})"
                    )
                    break

    # -------------------------
    # Services
    # -------------------------
    strategy = spec.strategy
    if strategy.canary_service and strategy.canary_service == strategy.stable_service:
        errors.append("canary and stable services must be different")

    if strategy.ping_pong is not None:
        ping_pong = strategy.ping_pong
        if not ping_pong.ping_service or not ping_pong.pong_service:
            errors.append("ping and pong services are both required")
        elif ping_pong.ping_service == ping_pong.pong_service:
            errors.append("ping and pong services must be different")
        if strategy.canary_service or strategy.stable_service:
            errors.append("ping-pong services cannot be combined with canary/stable services")

    if strategy.scale_down_delay_seconds is not None and strategy.scale_down_delay_seconds < 0:
        errors.append("scaleDownDelaySeconds must be >= 0")

    # -------------------------
    # Steps
    # -------------------------
    for i, step in enumerate(strategy.steps):
        where = f"steps[{i}]"
        if isinstance(step, SetWeightStep):
            if not 0 <= step.weight <= 100:
                errors.append(f"{where}.setWeight must be between 0 and 100")
        elif isinstance(step, PauseStep):
            if step.duration is not None and not is_valid_duration(step.duration):
                errors.append(f"{where}.pause.duration is invalid: {step.duration!r}")
        elif isinstance(step, AnalysisStep):
            if not step.templates:
                errors.append(f"{where}.analysis must reference at least one template")
        elif isinstance(step, ExperimentStep):
            if not step.templates:
                errors.append(f"{where}.experiment must reference at least one template")
            if step.duration is not None and not is_valid_duration(step.duration):
                errors.append(f"{where}.experiment.duration is invalid: {step.duration!r}")
        else:
            errors.append(f"{where} has unknown step type {type(step).__name__}")

    # -------------------------
    # Analysis / stickiness / affinity
    # -------------------------
    if strategy.analysis is not None:
        if not strategy.analysis.templates:
            errors.append("analysis must reference at least one template")
        if strategy.analysis.start_step < 0 or strategy.analysis.start_step > len(strategy.steps):
            errors.append("analysis.startingStep is out of range")

    if strategy.stickiness is not None and strategy.stickiness.enabled:
        if not 1 <= strategy.stickiness.duration_seconds <= MAX_STICKINESS_SECONDS:
            errors.append(
                f"stickiness.durationSeconds must be between 1 and {MAX_STICKINESS_SECONDS}"
            )

    if strategy.anti_affinity is not None:
        weight = strategy.anti_affinity.preferred_weight
        if weight is not None and not 1 <= weight <= 100:
            errors.append("antiAffinity weight must be between 1 and 100")
        if weight is not None and strategy.anti_affinity.required:
            errors.append("antiAffinity must be either preferred or required, not both")

    history = strategy.analysis_run_history
    if history is not None:
        for label, limit in (
            ("successfulRunHistoryLimit", history.successful_run_history_limit),
            ("unsuccessfulRunHistoryLimit", history.unsuccessful_run_history_limit),
        ):
            if limit is not None and limit < 0:
                errors.append(f"{label} must be >= 0")

    return errors

