# rollout_engine/api/routes/rollouts.py
"""Rollout API routes."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from rollout_engine.api.container import get_rollout_service
from rollout_engine.api.schemas.rollout import AbortRequest, RolloutCreateRequest, RolloutSummary
from rollout_engine.core.errors import (
    ObservationUnavailable,
    RolloutAlreadyExists,
    RolloutConcurrencyError,
    RolloutNotFound,
)
from rollout_engine.core.models import Rollout
from rollout_engine.core.schemas import RolloutSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rollouts", tags=["rollouts"])


def _response(rollout: Optional[Rollout]) -> RolloutSchema:
    if rollout is None:
        raise HTTPException(status_code=409, detail="Rollout is owned by another controller instance")
    return RolloutSchema.from_domain(rollout)


def _run(action, *args):
    """Map service errors onto HTTP status codes."""
    try:
        return action(*args)
    except RolloutNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (RolloutAlreadyExists, RolloutConcurrencyError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ObservationUnavailable as e:
        logger.warning(f"Observation unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))


@router.get("", response_model=List[RolloutSummary])
def list_rollouts(
    namespace: Optional[str] = None,
    service=Depends(get_rollout_service),
):
    return [RolloutSummary.from_domain(r) for r in service.list(namespace)]


@router.post("", response_model=RolloutSchema, response_model_exclude_none=True, status_code=201)
def create_rollout(
    request: RolloutCreateRequest,
    service=Depends(get_rollout_service),
):
    rollout = _run(service.create, request.to_domain())
    return RolloutSchema.from_domain(rollout)


@router.get("/{namespace}/{name}", response_model=RolloutSchema, response_model_exclude_none=True)
def get_rollout(
    namespace: str,
    name: str,
    service=Depends(get_rollout_service),
):
    return RolloutSchema.from_domain(_run(service.get, namespace, name))


@router.post("/{namespace}/{name}/reconcile", response_model=RolloutSchema, response_model_exclude_none=True)
def reconcile_rollout(
    namespace: str,
    name: str,
    service=Depends(get_rollout_service),
):
    return _response(_run(service.reconcile, namespace, name))


@router.post("/{namespace}/{name}/resume", response_model=RolloutSchema, response_model_exclude_none=True)
def resume_rollout(
    namespace: str,
    name: str,
    service=Depends(get_rollout_service),
):
    return _response(_run(service.resume, namespace, name))


@router.post("/{namespace}/{name}/abort", response_model=RolloutSchema, response_model_exclude_none=True)
def abort_rollout(
    namespace: str,
    name: str,
    request: Optional[AbortRequest] = None,
    service=Depends(get_rollout_service),
):
    message = request.message if request else AbortRequest().message
    return _response(_run(service.abort, namespace, name, message))
