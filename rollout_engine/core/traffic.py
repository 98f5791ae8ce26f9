"""Traffic weight resolver - target split between canary and stable."""

from typing import Optional, Sequence, Tuple

from rollout_engine.core.models import (
    CanaryStep,
    CanaryStrategy,
    PingPongType,
    SetWeightStep,
    TrafficWeights,
    WeightDestination,
)

MAX_TRAFFIC_WEIGHT = 100


def current_set_weight(steps: Sequence[CanaryStep], index: Optional[int]) -> int:
    """Weight of the nearest set-weight step at or before `index`."""
    if not steps or index is None:
        return 0
    start = min(index, len(steps) - 1)
    for i in range(start, -1, -1):
        step = steps[i]
        if isinstance(step, SetWeightStep):
            return step.weight
    return 0


class TrafficWeightResolver:
    """
    Computes weighted destinations for the current step.

    Output depends only on the inputs, so repeated calls agree; session
    stickiness relies on that.
    """

    def __init__(self, strategy: CanaryStrategy):
        self._strategy = strategy

    def services(self, stable_side: Optional[PingPongType]) -> Tuple[str, str]:
        """(canary service, stable service), honoring ping-pong roles."""
        ping_pong = self._strategy.ping_pong
        if ping_pong is None:
            return self._strategy.canary_service, self._strategy.stable_service
        side = stable_side or PingPongType.PING
        return ping_pong.service_for(side.other()), ping_pong.service_for(side)

    def resolve(
        self,
        *,
        step_index: Optional[int],
        latest_hash: str,
        stable_hash: str,
        stable_side: Optional[PingPongType] = None,
        aborted: bool = False,
        promoted: bool = False,
    ) -> TrafficWeights:
        canary_service, stable_service = self.services(stable_side)

        if aborted:
            weight = 0
        elif promoted:
            # Latest is stable now; everything routes to the stable destination
            weight = 0
        elif self._strategy.steps and step_index is not None and step_index >= len(self._strategy.steps):
            weight = MAX_TRAFFIC_WEIGHT
        else:
            weight = current_set_weight(self._strategy.steps, step_index)

        weight = max(0, min(MAX_TRAFFIC_WEIGHT, weight))

        stickiness = self._strategy.stickiness
        if stickiness is not None and not stickiness.enabled:
            stickiness = None

        return TrafficWeights(
            canary=WeightDestination(
                weight=weight,
                service_name=canary_service,
                pod_template_hash=latest_hash,
            ),
            stable=WeightDestination(
                weight=MAX_TRAFFIC_WEIGHT - weight,
                service_name=stable_service,
                pod_template_hash=stable_hash,
            ),
            stickiness=stickiness,
        )
