# rollout_engine/observer/client.py
"""HTTP client for a cluster agent that reports rollout observations."""

import logging
from typing import Iterable

import requests
from pydantic import ValidationError

from rollout_engine.core.errors import ObservationUnavailable
from rollout_engine.core.models import Observation, Rollout
from rollout_engine.core.observer import ReplicaSetObserver
from rollout_engine.core.replicasets import ReplicaSetPatch
from rollout_engine.core.schemas import ObservationSchema

logger = logging.getLogger(__name__)


class HttpObserver(ReplicaSetObserver):
    """Client for communicating with a cluster agent."""

    def __init__(self, agent_url: str, timeout: int = 10):
        """
        Initialize client.

        Args:
            agent_url: Base URL of the agent (e.g., "http://10.0.1.10:9000")
            timeout: Request timeout in seconds
        """
        self.base_url = agent_url.rstrip('/')
        self.timeout = timeout

    def _rollout_url(self, rollout: Rollout) -> str:
        return f"{self.base_url}/rollouts/{rollout.namespace}/{rollout.name}"

    def health_check(self) -> bool:
        """
        Check if agent is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            response = requests.get(f"{self.base_url}/health", timeout=5)
            return response.status_code == 200
        except requests.RequestException as e:
            logger.error(f"Health check failed: {e}")
            return False

    def observe(self, rollout: Rollout) -> Observation:
        """
        Fetch the observation for a rollout.

        Raises:
            ObservationUnavailable: Network error, non-200 reply or bad payload
        """
        url = f"{self._rollout_url(rollout)}/observation"
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise ObservationUnavailable(f"[{rollout.key}] Agent unreachable: {e}") from e

        if response.status_code != 200:
            raise ObservationUnavailable(
                f"[{rollout.key}] Observation failed [{response.status_code}]: {response.text}"
            )

        try:
            return ObservationSchema.model_validate(response.json()).to_domain()
        except (ValueError, ValidationError) as e:
            raise ObservationUnavailable(f"[{rollout.key}] Malformed observation: {e}") from e

    def apply_patches(self, rollout: Rollout, patches: Iterable[ReplicaSetPatch]) -> None:
        """
        Send annotation patches to the agent.

        Raises:
            ObservationUnavailable: If the agent rejects a patch
        """
        for patch in patches:
            url = f"{self._rollout_url(rollout)}/replicasets/{patch.pod_template_hash}/annotations"
            try:
                response = requests.patch(url, json=patch.annotations, timeout=self.timeout)
            except requests.RequestException as e:
                raise ObservationUnavailable(f"[{rollout.key}] Patch failed: {e}") from e

            if response.status_code not in (200, 204):
                raise ObservationUnavailable(
                    f"[{rollout.key}] Patch of {patch.pod_template_hash} failed "
                    f"[{response.status_code}]: {response.text}"
                )

            logger.info(f"[{rollout.key}] Patched replica set {patch.pod_template_hash}")
