"""Pydantic schemas for validation and serialization (camelCase wire form)."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator
from pydantic.alias_generators import to_camel

from rollout_engine.core.labels import POD_TEMPLATE_HASH, ROLLOUT_TYPE, get_step_index
from rollout_engine.core.models import (
    AnalysisOutcome,
    AnalysisPhase,
    AnalysisRunStatus,
    AnalysisRunStrategy,
    AnalysisRunType,
    AnalysisStep,
    AntiAffinity,
    BackgroundAnalysis,
    CanaryStatus,
    CanaryStep,
    CanaryStrategy,
    ConditionStatus,
    ExperimentStep,
    Observation,
    PauseCondition,
    PauseReason,
    PauseStep,
    PingPongSpec,
    PingPongType,
    PodTemplate,
    ReplicaSetSummary,
    Rollout,
    RolloutCondition,
    RolloutConditionType,
    RolloutPhase,
    RolloutSpec,
    RolloutStatus,
    SetWeightStep,
    StickinessConfig,
    TrafficWeights,
    WeightDestination,
)

DurationValue = Union[StrictInt, StrictStr]


class WireModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================
# Strategy Schemas
# ============================================

class PauseSchema(WireModel):
    duration: Optional[DurationValue] = None


class AnalysisTemplatesSchema(WireModel):
    templates: List[str] = Field(default_factory=list)


class ExperimentSchema(WireModel):
    duration: Optional[DurationValue] = None
    templates: List[str] = Field(default_factory=list)


class StepSchema(WireModel):
    """
    One canary step. Exactly one of the step kinds must be set.

    Only the structure is checked here; semantic errors (weights out of
    range, unparseable durations) surface as InvalidSpec during reconcile.
    """

    set_weight: Optional[StrictInt] = None
    pause: Optional[PauseSchema] = None
    analysis: Optional[AnalysisTemplatesSchema] = None
    experiment: Optional[ExperimentSchema] = None

    @model_validator(mode="after")
    def exactly_one_kind(self):
        kinds = [
            name for name in ("set_weight", "pause", "analysis", "experiment")
            if getattr(self, name) is not None
        ]
        if len(kinds) != 1:
            raise ValueError(
                f"step must set exactly one of setWeight, pause, analysis, experiment (got {len(kinds)})"
            )
        return self

    def to_domain(self) -> CanaryStep:
        if self.set_weight is not None:
            return SetWeightStep(weight=self.set_weight)
        if self.pause is not None:
            return PauseStep(duration=self.pause.duration)
        if self.analysis is not None:
            return AnalysisStep(templates=tuple(self.analysis.templates))
        return ExperimentStep(
            duration=self.experiment.duration,
            templates=tuple(self.experiment.templates),
        )

    @classmethod
    def from_domain(cls, step: CanaryStep) -> "StepSchema":
        if isinstance(step, SetWeightStep):
            return cls(set_weight=step.weight)
        if isinstance(step, PauseStep):
            return cls(pause=PauseSchema(duration=step.duration))
        if isinstance(step, AnalysisStep):
            return cls(analysis=AnalysisTemplatesSchema(templates=list(step.templates)))
        if isinstance(step, ExperimentStep):
            return cls(experiment=ExperimentSchema(
                duration=step.duration, templates=list(step.templates),
            ))
        raise TypeError(f"Unknown step type: {type(step).__name__}")


class StickinessSchema(WireModel):
    enabled: bool = False
    duration_seconds: int = 0


class PingPongSchema(WireModel):
    ping_service: str
    pong_service: str


class BackgroundAnalysisSchema(WireModel):
    templates: List[str] = Field(default_factory=list)
    starting_step: int = 0


class AntiAffinitySchema(WireModel):
    preferred_weight: Optional[int] = None
    required: bool = False


class AnalysisRunHistorySchema(WireModel):
    successful_run_history_limit: Optional[int] = None
    unsuccessful_run_history_limit: Optional[int] = None


class CanaryStrategySchema(WireModel):
    canary_service: str = ""
    stable_service: str = ""
    ping_pong: Optional[PingPongSchema] = None
    steps: List[StepSchema] = Field(default_factory=list)
    stickiness: Optional[StickinessSchema] = None
    analysis: Optional[BackgroundAnalysisSchema] = None
    anti_affinity: Optional[AntiAffinitySchema] = None
    analysis_run_history: Optional[AnalysisRunHistorySchema] = None
    scale_down_delay_seconds: Optional[int] = None

    def to_domain(self) -> CanaryStrategy:
        return CanaryStrategy(
            canary_service=self.canary_service,
            stable_service=self.stable_service,
            ping_pong=PingPongSpec(
                ping_service=self.ping_pong.ping_service,
                pong_service=self.ping_pong.pong_service,
            ) if self.ping_pong else None,
            steps=[step.to_domain() for step in self.steps],
            stickiness=StickinessConfig(
                enabled=self.stickiness.enabled,
                duration_seconds=self.stickiness.duration_seconds,
            ) if self.stickiness else None,
            analysis=BackgroundAnalysis(
                templates=tuple(self.analysis.templates),
                start_step=self.analysis.starting_step,
            ) if self.analysis else None,
            anti_affinity=AntiAffinity(
                preferred_weight=self.anti_affinity.preferred_weight,
                required=self.anti_affinity.required,
            ) if self.anti_affinity else None,
            analysis_run_history=AnalysisRunStrategy(
                successful_run_history_limit=self.analysis_run_history.successful_run_history_limit,
                unsuccessful_run_history_limit=self.analysis_run_history.unsuccessful_run_history_limit,
            ) if self.analysis_run_history else None,
            scale_down_delay_seconds=self.scale_down_delay_seconds,
        )

    @classmethod
    def from_domain(cls, strategy: CanaryStrategy) -> "CanaryStrategySchema":
        ping_pong = strategy.ping_pong
        stickiness = strategy.stickiness
        analysis = strategy.analysis
        anti_affinity = strategy.anti_affinity
        history = strategy.analysis_run_history
        return cls(
            canary_service=strategy.canary_service,
            stable_service=strategy.stable_service,
            ping_pong=PingPongSchema(
                ping_service=ping_pong.ping_service,
                pong_service=ping_pong.pong_service,
            ) if ping_pong else None,
            steps=[StepSchema.from_domain(step) for step in strategy.steps],
            stickiness=StickinessSchema(
                enabled=stickiness.enabled,
                duration_seconds=stickiness.duration_seconds,
            ) if stickiness else None,
            analysis=BackgroundAnalysisSchema(
                templates=list(analysis.templates),
                starting_step=analysis.start_step,
            ) if analysis else None,
            anti_affinity=AntiAffinitySchema(
                preferred_weight=anti_affinity.preferred_weight,
                required=anti_affinity.required,
            ) if anti_affinity else None,
            analysis_run_history=AnalysisRunHistorySchema(
                successful_run_history_limit=history.successful_run_history_limit,
                unsuccessful_run_history_limit=history.unsuccessful_run_history_limit,
            ) if history else None,
            scale_down_delay_seconds=strategy.scale_down_delay_seconds,
        )


# ============================================
# Spec Schema
# ============================================

class PodTemplateSchema(WireModel):
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    spec: Dict[str, Any] = Field(default_factory=dict)


class RolloutSpecSchema(WireModel):
    replicas: Optional[int] = None
    selector: Optional[Dict[str, str]] = None
    template: PodTemplateSchema = Field(default_factory=PodTemplateSchema)
    min_ready_seconds: int = 0
    strategy: CanaryStrategySchema = Field(default_factory=CanaryStrategySchema)
    revision_history_limit: Optional[int] = None
    paused: bool = False
    template_resolved_from_ref: bool = False
    selector_resolved_from_ref: bool = False

    def to_domain(self) -> RolloutSpec:
        return RolloutSpec(
            replicas=self.replicas,
            selector=dict(self.selector) if self.selector is not None else None,
            template=PodTemplate(
                labels=dict(self.template.labels),
                annotations=dict(self.template.annotations),
                spec=dict(self.template.spec),
            ),
            min_ready_seconds=self.min_ready_seconds,
            strategy=self.strategy.to_domain(),
            revision_history_limit=self.revision_history_limit,
            paused=self.paused,
            template_resolved_from_ref=self.template_resolved_from_ref,
            selector_resolved_from_ref=self.selector_resolved_from_ref,
        )

    @classmethod
    def from_domain(cls, spec: RolloutSpec) -> "RolloutSpecSchema":
        return cls(
            replicas=spec.replicas,
            selector=spec.selector,
            template=PodTemplateSchema(
                labels=spec.template.labels,
                annotations=spec.template.annotations,
                spec=spec.template.spec,
            ),
            min_ready_seconds=spec.min_ready_seconds,
            strategy=CanaryStrategySchema.from_domain(spec.strategy),
            revision_history_limit=spec.revision_history_limit,
            paused=spec.paused,
            template_resolved_from_ref=spec.template_resolved_from_ref,
            selector_resolved_from_ref=spec.selector_resolved_from_ref,
        )


# ============================================
# Status Schema
# ============================================

class PauseConditionSchema(WireModel):
    reason: PauseReason
    start_time: datetime


class RolloutConditionSchema(WireModel):
    type: RolloutConditionType
    status: ConditionStatus
    last_update_time: datetime
    last_transition_time: datetime
    reason: str = ""
    message: str = ""


class WeightDestinationSchema(WireModel):
    weight: int
    service_name: str = ""
    pod_template_hash: str = ""

    def to_domain(self) -> WeightDestination:
        return WeightDestination(
            weight=self.weight,
            service_name=self.service_name,
            pod_template_hash=self.pod_template_hash,
        )


class TrafficWeightsSchema(WireModel):
    canary: WeightDestinationSchema
    stable: WeightDestinationSchema
    additional: List[WeightDestinationSchema] = Field(default_factory=list)
    stickiness: Optional[StickinessSchema] = None


class AnalysisRunStatusSchema(WireModel):
    name: str
    status: AnalysisPhase
    message: str = ""


class CanaryStatusSchema(WireModel):
    weights: Optional[TrafficWeightsSchema] = None
    current_step_analysis_run_status: Optional[AnalysisRunStatusSchema] = None
    current_background_analysis_run_status: Optional[AnalysisRunStatusSchema] = None
    stable_ping_pong: Optional[PingPongType] = None


class RolloutStatusSchema(WireModel):
    phase: Optional[RolloutPhase] = None
    message: str = ""
    conditions: List[RolloutConditionSchema] = Field(default_factory=list)
    pause_conditions: List[PauseConditionSchema] = Field(default_factory=list)
    controller_pause: bool = False
    replicas: int = 0
    updated_replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    hpa_replicas: int = 0
    current_step_index: Optional[int] = None
    current_step_hash: str = ""
    current_pod_hash: str = ""
    stable_rs: str = ""
    collision_count: Optional[int] = None
    selector: str = ""
    canary: CanaryStatusSchema = Field(default_factory=CanaryStatusSchema)
    aborted: bool = False
    aborted_at: Optional[datetime] = None
    abort_message: str = ""
    observed_generation: int = 0

    def to_domain(self) -> RolloutStatus:
        weights = self.canary.weights
        return RolloutStatus(
            phase=self.phase,
            message=self.message,
            conditions=[
                RolloutCondition(
                    type=c.type,
                    status=c.status,
                    last_update_time=c.last_update_time,
                    last_transition_time=c.last_transition_time,
                    reason=c.reason,
                    message=c.message,
                )
                for c in self.conditions
            ],
            pause_conditions=[
                PauseCondition(reason=p.reason, start_time=p.start_time)
                for p in self.pause_conditions
            ],
            controller_pause=self.controller_pause,
            replicas=self.replicas,
            updated_replicas=self.updated_replicas,
            ready_replicas=self.ready_replicas,
            available_replicas=self.available_replicas,
            hpa_replicas=self.hpa_replicas,
            current_step_index=self.current_step_index,
            current_step_hash=self.current_step_hash,
            current_pod_hash=self.current_pod_hash,
            stable_rs=self.stable_rs,
            collision_count=self.collision_count,
            selector=self.selector,
            canary=CanaryStatus(
                weights=TrafficWeights(
                    canary=weights.canary.to_domain(),
                    stable=weights.stable.to_domain(),
                    additional=tuple(d.to_domain() for d in weights.additional),
                    stickiness=StickinessConfig(
                        enabled=weights.stickiness.enabled,
                        duration_seconds=weights.stickiness.duration_seconds,
                    ) if weights.stickiness else None,
                ) if weights else None,
                current_step_analysis_run_status=_run_status(self.canary.current_step_analysis_run_status),
                current_background_analysis_run_status=_run_status(
                    self.canary.current_background_analysis_run_status
                ),
                stable_ping_pong=self.canary.stable_ping_pong,
            ),
            aborted=self.aborted,
            aborted_at=self.aborted_at,
            abort_message=self.abort_message,
            observed_generation=self.observed_generation,
        )

    @classmethod
    def from_domain(cls, status: RolloutStatus) -> "RolloutStatusSchema":
        weights = status.canary.weights
        return cls(
            phase=status.phase,
            message=status.message,
            conditions=[
                RolloutConditionSchema(
                    type=c.type,
                    status=c.status,
                    last_update_time=c.last_update_time,
                    last_transition_time=c.last_transition_time,
                    reason=c.reason,
                    message=c.message,
                )
                for c in status.conditions
            ],
            pause_conditions=[
                PauseConditionSchema(reason=p.reason, start_time=p.start_time)
                for p in status.pause_conditions
            ],
            controller_pause=status.controller_pause,
            replicas=status.replicas,
            updated_replicas=status.updated_replicas,
            ready_replicas=status.ready_replicas,
            available_replicas=status.available_replicas,
            hpa_replicas=status.hpa_replicas,
            current_step_index=status.current_step_index,
            current_step_hash=status.current_step_hash,
            current_pod_hash=status.current_pod_hash,
            stable_rs=status.stable_rs,
            collision_count=status.collision_count,
            selector=status.selector,
            canary=CanaryStatusSchema(
                weights=TrafficWeightsSchema(
                    canary=_destination(weights.canary),
                    stable=_destination(weights.stable),
                    additional=[_destination(d) for d in weights.additional],
                    stickiness=StickinessSchema(
                        enabled=weights.stickiness.enabled,
                        duration_seconds=weights.stickiness.duration_seconds,
                    ) if weights.stickiness else None,
                ) if weights else None,
                current_step_analysis_run_status=_run_status_schema(
                    status.canary.current_step_analysis_run_status
                ),
                current_background_analysis_run_status=_run_status_schema(
                    status.canary.current_background_analysis_run_status
                ),
                stable_ping_pong=status.canary.stable_ping_pong,
            ),
            aborted=status.aborted,
            aborted_at=status.aborted_at,
            abort_message=status.abort_message,
            observed_generation=status.observed_generation,
        )


def _destination(dest: WeightDestination) -> WeightDestinationSchema:
    return WeightDestinationSchema(
        weight=dest.weight,
        service_name=dest.service_name,
        pod_template_hash=dest.pod_template_hash,
    )


def _run_status(schema: Optional[AnalysisRunStatusSchema]) -> Optional[AnalysisRunStatus]:
    if schema is None:
        return None
    return AnalysisRunStatus(name=schema.name, status=schema.status, message=schema.message)


def _run_status_schema(status: Optional[AnalysisRunStatus]) -> Optional[AnalysisRunStatusSchema]:
    if status is None:
        return None
    return AnalysisRunStatusSchema(name=status.name, status=status.status, message=status.message)


# ============================================
# Rollout Schema
# ============================================

class RolloutSchema(WireModel):
    """Full rollout resource."""

    name: str = Field(..., min_length=1, max_length=253)
    namespace: str = Field(default="default", min_length=1, max_length=63)
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    generation: int = Field(default=1, ge=1)
    resource_version: int = Field(default=0, ge=0)
    spec: RolloutSpecSchema = Field(default_factory=RolloutSpecSchema)
    status: RolloutStatusSchema = Field(default_factory=RolloutStatusSchema)

    def to_domain(self) -> Rollout:
        return Rollout(
            name=self.name,
            namespace=self.namespace,
            labels=dict(self.labels),
            annotations=dict(self.annotations),
            generation=self.generation,
            resource_version=self.resource_version,
            spec=self.spec.to_domain(),
            status=self.status.to_domain(),
        )

    @classmethod
    def from_domain(cls, rollout: Rollout) -> "RolloutSchema":
        return cls(
            name=rollout.name,
            namespace=rollout.namespace,
            labels=rollout.labels,
            annotations=rollout.annotations,
            generation=rollout.generation,
            resource_version=rollout.resource_version,
            spec=RolloutSpecSchema.from_domain(rollout.spec),
            status=RolloutStatusSchema.from_domain(rollout.status),
        )


# ============================================
# Observation Schema
# ============================================

class ReplicaSetSummarySchema(WireModel):
    """
    Replica set counts. The hash may be given directly or through the
    pod-template-hash label the replica set carries.
    """

    pod_template_hash: Optional[str] = None
    replicas: int = Field(default=0, ge=0)
    ready_replicas: int = Field(default=0, ge=0)
    available_replicas: int = Field(default=0, ge=0)
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def hash_from_labels(self):
        if not self.pod_template_hash:
            self.pod_template_hash = POD_TEMPLATE_HASH.get(self.labels)
        if not self.pod_template_hash:
            raise ValueError(
                f"replica set needs podTemplateHash or a {POD_TEMPLATE_HASH.key} label"
            )
        return self


class AnalysisOutcomeSchema(WireModel):
    """
    Analysis run state. Kind and step index fall back to the rollout-type and
    step-index labels the rollout put on the run.
    """

    name: str
    phase: AnalysisPhase
    kind: Optional[AnalysisRunType] = None
    step_index: Optional[int] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    message: str = ""

    @model_validator(mode="after")
    def fields_from_labels(self):
        if self.kind is None:
            rollout_type = ROLLOUT_TYPE.get(self.labels)
            self.kind = AnalysisRunType(rollout_type) if rollout_type else AnalysisRunType.STEP
        if self.step_index is None:
            self.step_index = get_step_index(self.labels)
        return self


class ObservationSchema(WireModel):
    """Observation payload returned by an agent."""

    replica_sets: List[ReplicaSetSummarySchema] = Field(default_factory=list)
    replica_failure: Optional[str] = None
    analysis: List[AnalysisOutcomeSchema] = Field(default_factory=list)

    def to_domain(self) -> Observation:
        return Observation(
            replica_sets=tuple(
                ReplicaSetSummary(
                    pod_template_hash=rs.pod_template_hash,
                    replicas=rs.replicas,
                    ready_replicas=rs.ready_replicas,
                    available_replicas=rs.available_replicas,
                    annotations=dict(rs.annotations),
                )
                for rs in self.replica_sets
            ),
            replica_failure=self.replica_failure,
            analysis=tuple(
                AnalysisOutcome(
                    name=a.name,
                    phase=a.phase,
                    kind=a.kind,
                    step_index=a.step_index,
                    message=a.message,
                )
                for a in self.analysis
            ),
        )
