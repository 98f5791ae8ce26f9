# rollout_engine/controller/controller.py
"""
Rollout Controller - background process that reconciles every rollout.

Polls the store, and hands each rollout owned by this instance to a worker
pool. A rollout is never reconciled by two workers at once; rollouts that hit
transient errors are retried with exponential backoff.
"""

import logging
import signal
import time
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, Dict, List, Set

from rollout_engine.controller.config import ControllerConfig
from rollout_engine.core.errors import (
    ObservationUnavailable,
    RolloutConcurrencyError,
    RolloutNotFound,
)
from rollout_engine.core.service import RolloutService

logger = logging.getLogger(__name__)


class RolloutController:
    """
    Background service that drives reconciliation passes.

    Architecture:
    - Polls the repository every poll interval
    - Keyed in-flight guard (one pass per rollout at a time)
    - Thread pool for passes of different rollouts
    - Per-rollout exponential backoff on transient errors
    """

    def __init__(
        self,
        service: RolloutService,
        config: ControllerConfig = ControllerConfig(),
        clock: Callable[[], float] = time.monotonic,
    ):
        self._service = service
        self._config = config
        self._clock = clock
        self._stop_requested = False

        self._lock = Lock()
        self._in_flight: Set[str] = set()
        self._failures: Dict[str, int] = {}
        self._retry_at: Dict[str, float] = {}

        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix="rollout-worker",
        )

        logger.info("Rollout Controller initialized")
        logger.info(f"Poll interval: {config.poll_interval_seconds}s, workers: {config.max_workers}")

    def start(self):
        """Start the controller loop (blocks until stopped)."""
        logger.info("=" * 80)
        logger.info("ROLLOUT CONTROLLER STARTED")
        logger.info("=" * 80)

        self.check_observer()

        # Register signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        try:
            while not self._stop_requested:
                try:
                    self.run_cycle()
                except Exception as e:
                    logger.error(f"Error in reconcile cycle: {e}", exc_info=True)

                # Wait before next cycle
                if not self._stop_requested:
                    time.sleep(self._config.poll_interval_seconds)
        finally:
            self.shutdown()

        logger.info("Rollout Controller stopped")

    def check_observer(self) -> bool:
        """Log a warning when the observer cannot be reached. Passes still run and back off."""
        healthy = self._service.observer_healthy()
        if not healthy:
            logger.warning("Observer agent is not healthy, rollouts will be retried until it responds")
        return healthy

    def stop(self):
        self._stop_requested = True

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, stopping...")
        self._stop_requested = True

    # -------------------------
    # CYCLE
    # -------------------------

    def run_cycle(self) -> List[Future]:
        """
        Submit one pass for every eligible rollout.

        Returns the submitted futures (tests wait on them).
        """
        futures: List[Future] = []
        now = self._clock()

        for rollout in self._service.list():
            key = rollout.key

            if not self._service.owns(rollout):
                continue

            wait = self._backoff_remaining(key, now)
            if wait > 0:
                logger.debug(f"[{key}] Backing off, retry in {wait:.1f}s")
                continue

            if not self._claim(key):
                logger.debug(f"[{key}] Pass already in flight, skipping")
                continue

            futures.append(self._executor.submit(self._reconcile_one, rollout.namespace, rollout.name))

        if futures:
            logger.debug(f"Submitted {len(futures)} reconcile pass(es)")
        return futures

    def failures(self, key: str) -> int:
        with self._lock:
            return self._failures.get(key, 0)

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    def _backoff_remaining(self, key: str, now: float) -> float:
        with self._lock:
            return self._retry_at.get(key, now) - now

    def _claim(self, key: str) -> bool:
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def _release(self, key: str) -> None:
        with self._lock:
            self._in_flight.discard(key)

    def _reconcile_one(self, namespace: str, name: str) -> None:
        key = f"{namespace}/{name}"
        try:
            self._service.reconcile(namespace, name)
            self._record_success(key)
        except (ObservationUnavailable, RolloutConcurrencyError) as e:
            delay = self._record_failure(key)
            logger.warning(f"[{key}] Transient error, retry in {delay:.0f}s: {e}")
        except RolloutNotFound:
            logger.info(f"[{key}] Rollout deleted, dropping")
            self._record_success(key)
        except Exception as e:
            delay = self._record_failure(key)
            logger.error(f"[{key}] Reconcile failed, retry in {delay:.0f}s: {e}", exc_info=True)
        finally:
            self._release(key)

    def _record_success(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)
            self._retry_at.pop(key, None)

    def _record_failure(self, key: str) -> float:
        with self._lock:
            failures = self._failures.get(key, 0) + 1
            self._failures[key] = failures
            delay = self._config.backoff_delay(failures)
            self._retry_at[key] = self._clock() + delay
            return delay
