# rollout_engine/infrastructure/memory/repository.py

from copy import deepcopy
from dataclasses import replace
from threading import Lock
from typing import Dict, Iterable, Optional, Tuple

from rollout_engine.core.errors import (
    RolloutAlreadyExists,
    RolloutConcurrencyError,
    RolloutNotFound,
)
from rollout_engine.core.models import Rollout
from rollout_engine.core.repository import RolloutRepository


class InMemoryRolloutRepository(RolloutRepository):
    def __init__(self):
        self._store: Dict[Tuple[str, str], Rollout] = {}
        self._lock = Lock()

    def create(self, rollout: Rollout) -> Rollout:
        key = (rollout.namespace, rollout.name)
        with self._lock:
            if key in self._store:
                raise RolloutAlreadyExists(f"Rollout {rollout.key} already exists")
            stored = replace(deepcopy(rollout), resource_version=1)
            self._store[key] = stored
            return deepcopy(stored)

    def get(self, namespace: str, name: str) -> Optional[Rollout]:
        with self._lock:
            stored = self._store.get((namespace, name))
            return deepcopy(stored) if stored else None

    def list(self, namespace: Optional[str] = None) -> Iterable[Rollout]:
        with self._lock:
            return [
                deepcopy(r)
                for (ns, _), r in sorted(self._store.items())
                if namespace is None or ns == namespace
            ]

    def update(self, rollout: Rollout) -> Rollout:
        key = (rollout.namespace, rollout.name)
        with self._lock:
            stored = self._store.get(key)
            if not stored:
                raise RolloutNotFound(f"Rollout {rollout.key} not found")

            if stored.resource_version != rollout.resource_version:
                raise RolloutConcurrencyError(
                    f"Rollout {rollout.key} modified concurrently "
                    f"(stored {stored.resource_version}, got {rollout.resource_version})"
                )

            generation = stored.generation
            if stored.spec != rollout.spec:
                generation += 1

            updated = replace(
                deepcopy(rollout),
                generation=generation,
                resource_version=stored.resource_version + 1,
            )
            self._store[key] = updated
            return deepcopy(updated)
