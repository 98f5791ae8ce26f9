# rollout_engine/core/repository.py

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from rollout_engine.core.models import Rollout


class RolloutRepository(ABC):
    """
    Persistence contract for rollouts.
    """

    @abstractmethod
    def create(self, rollout: Rollout) -> Rollout:
        """
        Persist a new rollout.
        Must fail if namespace/name already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, namespace: str, name: str) -> Optional[Rollout]:
        """
        Fetch rollout by namespace and name.
        Returns None if not found.
        """
        raise NotImplementedError

    @abstractmethod
    def list(self, namespace: Optional[str] = None) -> Iterable[Rollout]:
        """
        List rollouts, optionally restricted to one namespace.
        Used by the controller loop.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, rollout: Rollout) -> Rollout:
        """
        Persist spec and status.
        Must enforce optimistic concurrency on resource_version and bump
        generation when the spec changed. Returns the stored copy.
        """
        raise NotImplementedError
