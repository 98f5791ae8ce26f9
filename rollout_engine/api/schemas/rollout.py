from typing import Dict, Optional

from pydantic import Field

from rollout_engine.core.models import Rollout, RolloutPhase
from rollout_engine.core.schemas import RolloutSpecSchema, WireModel


class RolloutCreateRequest(WireModel):
    name: str = Field(..., min_length=1, max_length=253)
    namespace: str = Field(default="default", min_length=1, max_length=63)
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    spec: RolloutSpecSchema

    def to_domain(self) -> Rollout:
        return Rollout(
            name=self.name,
            namespace=self.namespace,
            labels=dict(self.labels),
            annotations=dict(self.annotations),
            spec=self.spec.to_domain(),
        )


class AbortRequest(WireModel):
    message: str = Field(default="manually aborted", min_length=1, max_length=1024)


class RolloutSummary(WireModel):
    name: str
    namespace: str
    phase: Optional[RolloutPhase] = None
    message: str = ""
    current_step_index: Optional[int] = None
    canary_weight: int = 0
    stable_rs: str = ""
    current_pod_hash: str = ""

    @classmethod
    def from_domain(cls, rollout: Rollout) -> "RolloutSummary":
        status = rollout.status
        weights = status.canary.weights
        return cls(
            name=rollout.name,
            namespace=rollout.namespace,
            phase=status.phase,
            message=status.message,
            current_step_index=status.current_step_index,
            canary_weight=weights.canary.weight if weights else 0,
            stable_rs=status.stable_rs,
            current_pod_hash=status.current_pod_hash,
        )
