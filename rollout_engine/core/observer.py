"""Observation boundary - what the controller can see of the live cluster."""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from threading import Lock
from typing import Dict, Iterable, Optional

from rollout_engine.core.models import Observation, Rollout
from rollout_engine.core.replicasets import ReplicaSetPatch

logger = logging.getLogger(__name__)


class ReplicaSetObserver(ABC):
    """Reads replica set / analysis state and applies replica set patches."""

    @abstractmethod
    def observe(self, rollout: Rollout) -> Observation:
        """
        Snapshot the replica sets and analysis runs owned by `rollout`.

        Raises:
            ObservationUnavailable: state could not be read (retried later)
        """
        raise NotImplementedError

    @abstractmethod
    def apply_patches(self, rollout: Rollout, patches: Iterable[ReplicaSetPatch]) -> None:
        """Merge annotation patches into the named replica sets."""
        raise NotImplementedError

    def health_check(self) -> bool:
        """True when the source of observations is reachable."""
        return True


class StaticObserver(ReplicaSetObserver):
    """In-memory observer fed by the caller (tests, development)."""

    def __init__(self, observations: Optional[Dict[str, Observation]] = None):
        self._observations: Dict[str, Observation] = dict(observations or {})
        self._lock = Lock()

    def set(self, key: str, observation: Observation) -> None:
        with self._lock:
            self._observations[key] = observation

    def observe(self, rollout: Rollout) -> Observation:
        with self._lock:
            return self._observations.get(rollout.key, Observation())

    def apply_patches(self, rollout: Rollout, patches: Iterable[ReplicaSetPatch]) -> None:
        by_hash = {p.pod_template_hash: p.annotations for p in patches}
        if not by_hash:
            return

        with self._lock:
            observation = self._observations.get(rollout.key, Observation())
            replica_sets = tuple(
                replace(rs, annotations={**rs.annotations, **by_hash[rs.pod_template_hash]})
                if rs.pod_template_hash in by_hash else rs
                for rs in observation.replica_sets
            )
            self._observations[rollout.key] = replace(observation, replica_sets=replica_sets)

        logger.debug(f"[{rollout.key}] Patched replica sets {sorted(by_hash)}")
