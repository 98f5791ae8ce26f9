# rollout_engine/api/main.py
"""Rollout Engine HTTP API."""

from fastapi import FastAPI

from rollout_engine.api.routes.rollouts import router as rollouts_router

app = FastAPI(
    title="Rollout Engine API",
    description="Create canary rollouts, run reconcile passes, resume and abort",
    version="0.1.0",
)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(rollouts_router)
