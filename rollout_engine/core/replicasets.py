"""Replica-set hash registry - stable/latest pod template hashes."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from rollout_engine.core import labels
from rollout_engine.core.hashing import compute_hash
from rollout_engine.core.models import Observation, PodTemplate

DEFAULT_SCALE_DOWN_DELAY_SECONDS = 30


def compute_pod_template_hash(template: PodTemplate, collision_count: Optional[int] = None) -> str:
    body = {
        "labels": template.labels,
        "annotations": template.annotations,
        "spec": template.spec,
    }
    return compute_hash(body, collision_count)


@dataclass(frozen=True)
class ReplicaSetPatch:
    """Annotation changes the caller must apply to a replica set."""
    pod_template_hash: str
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Promotion:
    """Outcome of promoting the latest replica set to stable."""
    stable_rs: str
    previous_stable_rs: str
    patches: List[ReplicaSetPatch] = field(default_factory=list)


class ReplicaSetHashRegistry:
    """Derives the latest hash and swaps it into the stable slot on promotion."""

    def __init__(
        self,
        stable_rs: str,
        latest_rs: str,
        scale_down_delay_seconds: int = DEFAULT_SCALE_DOWN_DELAY_SECONDS,
    ):
        self.stable_rs = stable_rs
        self.latest_rs = latest_rs
        self.scale_down_delay_seconds = scale_down_delay_seconds

    @classmethod
    def for_template(
        cls,
        stable_rs: str,
        template: PodTemplate,
        collision_count: Optional[int] = None,
        scale_down_delay_seconds: int = DEFAULT_SCALE_DOWN_DELAY_SECONDS,
    ) -> "ReplicaSetHashRegistry":
        return cls(
            stable_rs=stable_rs,
            latest_rs=compute_pod_template_hash(template, collision_count),
            scale_down_delay_seconds=scale_down_delay_seconds,
        )

    def has_stable(self) -> bool:
        return bool(self.stable_rs)

    def is_promoted(self) -> bool:
        """Latest template already runs as stable."""
        return self.has_stable() and self.stable_rs == self.latest_rs

    def scale_down_deadline(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.scale_down_delay_seconds)

    def promote(self, now: datetime) -> Promotion:
        """
        Make the latest hash stable.

        The outgoing stable replica set is stamped with a scale-down deadline;
        it must not be scaled to zero before that time.
        """
        previous = self.stable_rs
        patches: List[ReplicaSetPatch] = []

        if previous and previous != self.latest_rs:
            patches.append(ReplicaSetPatch(
                pod_template_hash=previous,
                annotations=labels.set_scale_down_deadline({}, self.scale_down_deadline(now)),
            ))

        self.stable_rs = self.latest_rs
        return Promotion(stable_rs=self.stable_rs, previous_stable_rs=previous, patches=patches)

    def old_replicas_pending(
        self,
        observation: Observation,
        now: datetime,
        patches: Optional[List[ReplicaSetPatch]] = None,
    ) -> int:
        """
        Replicas of retired replica sets that should already be gone.

        The stable replica set of an unfinished canary is not retired, and a
        replica set still inside its scale-down deadline (including one stamped
        by `patches` in this pass) is allowed to linger.
        """
        stamped = {p.pod_template_hash: p.annotations for p in patches or ()}
        pending = 0
        for rs in observation.replica_sets:
            if rs.pod_template_hash == self.latest_rs:
                continue
            if rs.pod_template_hash == self.stable_rs:
                continue
            annotations = {**rs.annotations, **stamped.get(rs.pod_template_hash, {})}
            if labels.can_scale_down(annotations, now):
                pending += rs.replicas
        return pending
