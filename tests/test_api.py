#tests\test_api.py

"""Test the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from rollout_engine.api.container import get_rollout_service
from rollout_engine.api.main import app
from rollout_engine.core import labels
from rollout_engine.core.errors import ObservationUnavailable
from rollout_engine.core.observer import StaticObserver
from rollout_engine.core.service import RolloutService


ROLLOUT_PAYLOAD = {
    "name": "demo",
    "namespace": "default",
    "spec": {
        "replicas": 5,
        "selector": {"app": "demo"},
        "template": {
            "labels": {"app": "demo"},
            "spec": {"containers": [{"name": "app", "image": "demo:v2"}]},
        },
        "strategy": {
            "canaryService": "demo-canary",
            "stableService": "demo-stable",
            "steps": [{"setWeight": 20}, {"pause": {"duration": "10s"}}],
        },
    },
}


class UnreachableObserver(StaticObserver):
    def observe(self, rollout):
        raise ObservationUnavailable("agent unreachable")


@pytest.fixture
def client(service):
    app.dependency_overrides[get_rollout_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(memory_repository, observer, rollout, make_observation):
    memory_repository.create(rollout)
    observer.set(rollout.key, make_observation(canary=1))
    return rollout


class TestRolloutApi:
    """Test rollout endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_create_rollout(self, client):
        response = client.post("/rollouts", json=ROLLOUT_PAYLOAD)

        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "demo"
        assert body["resourceVersion"] == 1
        assert body["spec"]["strategy"]["steps"] == [{"setWeight": 20}, {"pause": {"duration": "10s"}}]

    def test_create_duplicate_conflicts(self, client):
        client.post("/rollouts", json=ROLLOUT_PAYLOAD)

        response = client.post("/rollouts", json=ROLLOUT_PAYLOAD)

        assert response.status_code == 409

    def test_create_rejects_ambiguous_step(self, client):
        payload = {**ROLLOUT_PAYLOAD, "spec": {
            **ROLLOUT_PAYLOAD["spec"],
            "strategy": {"steps": [{"setWeight": 20, "pause": {}}]},
        }}

        response = client.post("/rollouts", json=payload)

        assert response.status_code == 422

    def test_get_missing_rollout(self, client):
        response = client.get("/rollouts/default/missing")

        assert response.status_code == 404

    def test_list_rollouts(self, client, seeded):
        client.post("/rollouts/default/demo/reconcile")

        response = client.get("/rollouts", params={"namespace": "default"})

        assert response.status_code == 200
        summaries = response.json()
        assert len(summaries) == 1
        assert summaries[0]["phase"] == "Paused"
        assert summaries[0]["currentStepIndex"] == 1
        assert summaries[0]["canaryWeight"] == 20

    def test_reconcile(self, client, seeded):
        response = client.post("/rollouts/default/demo/reconcile")

        assert response.status_code == 200
        status = response.json()["status"]
        assert status["phase"] == "Paused"
        assert status["pauseConditions"][0]["reason"] == "CanaryPauseStep"

    def test_resume(self, client, seeded, observer, make_observation):
        client.post("/rollouts/default/demo/reconcile")
        observer.set(seeded.key, make_observation())

        response = client.post("/rollouts/default/demo/resume")

        assert response.status_code == 200
        assert response.json()["status"]["phase"] == "Healthy"

    def test_abort(self, client, seeded):
        client.post("/rollouts/default/demo/reconcile")

        response = client.post("/rollouts/default/demo/abort", json={"message": "latency spike"})

        assert response.status_code == 200
        status = response.json()["status"]
        assert status["phase"] == "Degraded"
        assert status["aborted"] is True
        assert status["abortMessage"].endswith(": latency spike")

    def test_abort_without_body(self, client, seeded):
        client.post("/rollouts/default/demo/reconcile")

        response = client.post("/rollouts/default/demo/abort")

        assert response.status_code == 200
        assert response.json()["status"]["abortMessage"].endswith(": manually aborted")

    def test_foreign_rollout_conflicts(self, client, memory_repository, rollout):
        rollout.labels = labels.CONTROLLER_INSTANCE_ID.set({}, "east")
        memory_repository.create(rollout)

        response = client.post("/rollouts/default/demo/reconcile")

        assert response.status_code == 409

    def test_observer_unavailable(self, memory_repository, emitter, clock, seeded):
        service = RolloutService(memory_repository, UnreachableObserver(), emitter, clock=clock)
        app.dependency_overrides[get_rollout_service] = lambda: service
        try:
            response = TestClient(app).post("/rollouts/default/demo/reconcile")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
