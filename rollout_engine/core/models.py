#rollout_engine\core\models.py
"""Core domain models for rollouts (spec, status, steps, observations)."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


# ============================================
# ENUMS
# ============================================

class RolloutPhase(Enum):
    """Externally visible rollout phase."""
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    PROGRESSING = "Progressing"
    PAUSED = "Paused"


class PauseReason(Enum):
    """Reasons the controller can hold a rollout."""
    INCONCLUSIVE_ANALYSIS = "InconclusiveAnalysisRun"
    CANARY_PAUSE_STEP = "CanaryPauseStep"


class RolloutConditionType(Enum):
    """Condition types reported on a rollout."""
    INVALID_SPEC = "InvalidSpec"
    AVAILABLE = "Available"
    PROGRESSING = "Progressing"
    REPLICA_FAILURE = "ReplicaFailure"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    HEALTHY = "Healthy"


class ConditionStatus(Enum):
    """Status of a condition."""
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class AnalysisPhase(Enum):
    """Outcome of an analysis run or experiment."""
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCESSFUL = "Successful"
    FAILED = "Failed"
    ERROR = "Error"
    INCONCLUSIVE = "Inconclusive"

    def is_completed(self) -> bool:
        return self not in (AnalysisPhase.PENDING, AnalysisPhase.RUNNING)


class AnalysisRunType(Enum):
    """How the rollout created the analysis run (rollout-type label value)."""
    STEP = "Step"
    BACKGROUND = "Background"
    PRE_PROMOTION = "PrePromotion"
    POST_PROMOTION = "PostPromotion"


class PingPongType(Enum):
    """Which ping-pong service currently holds the stable role."""
    PING = "ping"
    PONG = "pong"

    def other(self) -> "PingPongType":
        return PingPongType.PONG if self == PingPongType.PING else PingPongType.PING


# ============================================
# VALUE TYPES
# ============================================

@dataclass(frozen=True)
class PauseCondition:
    """Why the rollout is paused and since when."""
    reason: PauseReason
    start_time: datetime


@dataclass(frozen=True)
class RolloutCondition:
    """Observed condition of a rollout."""
    type: RolloutConditionType
    status: ConditionStatus
    last_update_time: datetime
    last_transition_time: datetime
    reason: str = ""
    message: str = ""


@dataclass(frozen=True)
class WeightDestination:
    """A weighted traffic destination."""
    weight: int  # 0-100
    service_name: str = ""
    pod_template_hash: str = ""


@dataclass(frozen=True)
class StickinessConfig:
    """Session pinning for traffic destinations."""
    enabled: bool = False
    duration_seconds: int = 0


@dataclass(frozen=True)
class PingPongSpec:
    """Two services that swap canary/stable roles on every promotion."""
    ping_service: str
    pong_service: str

    def service_for(self, side: PingPongType) -> str:
        return self.ping_service if side == PingPongType.PING else self.pong_service


@dataclass(frozen=True)
class AnalysisRunStrategy:
    """How many finished analysis runs and experiments to keep around."""
    successful_run_history_limit: Optional[int] = None
    unsuccessful_run_history_limit: Optional[int] = None


@dataclass(frozen=True)
class AntiAffinity:
    """Inter-pod anti-affinity injected between stable and canary pods."""
    preferred_weight: Optional[int] = None  # 1-100
    required: bool = False


# ============================================
# STRATEGY STEPS (tagged variants)
# ============================================

Duration = Union[int, str]


@dataclass(frozen=True)
class SetWeightStep:
    """Route `weight` percent of traffic to the canary."""
    weight: int


@dataclass(frozen=True)
class PauseStep:
    """Hold for `duration`; without a duration, hold until resumed."""
    duration: Optional[Duration] = None


@dataclass(frozen=True)
class AnalysisStep:
    """Run analysis templates and gate progress on the outcome."""
    templates: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExperimentStep:
    """Run an experiment and gate progress on its analysis outcome."""
    duration: Optional[Duration] = None
    templates: Tuple[str, ...] = ()


CanaryStep = Union[SetWeightStep, PauseStep, AnalysisStep, ExperimentStep]

GATING_STEPS = (AnalysisStep, ExperimentStep)


@dataclass(frozen=True)
class BackgroundAnalysis:
    """Analysis run alongside the rollout from `start_step` onwards."""
    templates: Tuple[str, ...] = ()
    start_step: int = 0


@dataclass
class CanaryStrategy:
    """Canary strategy configuration."""
    canary_service: str = ""
    stable_service: str = ""
    ping_pong: Optional[PingPongSpec] = None

    steps: List[CanaryStep] = field(default_factory=list)

    stickiness: Optional[StickinessConfig] = None
    analysis: Optional[BackgroundAnalysis] = None
    anti_affinity: Optional[AntiAffinity] = None
    analysis_run_history: Optional[AnalysisRunStrategy] = None

    scale_down_delay_seconds: Optional[int] = None


# ============================================
# SPEC
# ============================================

@dataclass
class PodTemplate:
    """Pod template (labels, annotations and an opaque body)."""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    spec: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RolloutSpec:
    """Desired state of a rollout."""
    replicas: Optional[int] = None  # None means 1
    selector: Optional[Dict[str, str]] = None  # match labels
    template: PodTemplate = field(default_factory=PodTemplate)
    min_ready_seconds: int = 0
    strategy: CanaryStrategy = field(default_factory=CanaryStrategy)
    revision_history_limit: Optional[int] = None  # None means 10
    paused: bool = False

    # Set when template/selector come from a referenced workload
    template_resolved_from_ref: bool = False
    selector_resolved_from_ref: bool = False

    def desired_replicas(self) -> int:
        return 1 if self.replicas is None else self.replicas

    def empty_template(self) -> bool:
        return not self.template.labels and not self.template.annotations


# ============================================
# STATUS
# ============================================

@dataclass(frozen=True)
class AnalysisRunStatus:
    """Last known state of an analysis run tracked by the rollout."""
    name: str
    status: AnalysisPhase
    message: str = ""


@dataclass(frozen=True)
class TrafficWeights:
    """Target traffic split for the current step."""
    canary: WeightDestination
    stable: WeightDestination
    additional: Tuple[WeightDestination, ...] = ()
    stickiness: Optional[StickinessConfig] = None

    def destinations(self) -> List[WeightDestination]:
        """Explicit destinations; the stable remainder is implicit."""
        return [self.canary, *self.additional]


@dataclass
class CanaryStatus:
    """Canary-specific status."""
    weights: Optional[TrafficWeights] = None
    current_step_analysis_run_status: Optional[AnalysisRunStatus] = None
    current_background_analysis_run_status: Optional[AnalysisRunStatus] = None
    stable_ping_pong: Optional[PingPongType] = None


@dataclass
class RolloutStatus:
    """Status computed by each reconciliation pass."""
    phase: Optional[RolloutPhase] = None
    message: str = ""
    conditions: List[RolloutCondition] = field(default_factory=list)

    pause_conditions: List[PauseCondition] = field(default_factory=list)
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

    canary: CanaryStatus = field(default_factory=CanaryStatus)

    aborted: bool = False
    aborted_at: Optional[datetime] = None
    abort_message: str = ""

    observed_generation: int = 0

    def condition(self, condition_type: RolloutConditionType) -> Optional[RolloutCondition]:
        for cond in self.conditions:
            if cond.type == condition_type:
                return cond
        return None


# ============================================
# ROLLOUT (aggregate root)
# ============================================

@dataclass
class Rollout:
    """Rollout resource as held by the store."""
    name: str
    namespace: str = "default"

    spec: RolloutSpec = field(default_factory=RolloutSpec)
    status: RolloutStatus = field(default_factory=RolloutStatus)

    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    generation: int = 1
    # Optimistic concurrency
    resource_version: int = 0

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


# ============================================
# OBSERVATION (input to a pass)
# ============================================

@dataclass(frozen=True)
class ReplicaSetSummary:
    """Live counts for one replica set owned by the rollout."""
    pod_template_hash: str
    replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisOutcome:
    """Reported state of an analysis run or experiment."""
    name: str
    phase: AnalysisPhase
    kind: AnalysisRunType = AnalysisRunType.STEP
    step_index: Optional[int] = None
    message: str = ""


@dataclass(frozen=True)
class Observation:
    """Everything the controller saw before starting a pass."""
    replica_sets: Tuple[ReplicaSetSummary, ...] = ()
    replica_failure: Optional[str] = None
    analysis: Tuple[AnalysisOutcome, ...] = ()

    def replica_set(self, pod_template_hash: str) -> Optional[ReplicaSetSummary]:
        for rs in self.replica_sets:
            if rs.pod_template_hash == pod_template_hash:
                return rs
        return None
