#rollout_engine\api\container.py
from rollout_engine.container import get_rollout_service as _get_rollout_service
from rollout_engine.core.service import RolloutService


def get_rollout_service() -> RolloutService:
    return _get_rollout_service()
