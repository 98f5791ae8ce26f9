"""Event emitters for the rollout engine."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List

from rollout_engine.core.events_model import RolloutEvent

logger = logging.getLogger(__name__)


ALLOWED_EVENTS = {
    "rollout.step_advanced",
    "rollout.steps_reset",
    "rollout.paused",
    "rollout.resumed",
    "rollout.promoted",
    "rollout.aborted",
    "rollout.invalid_spec",
    "rollout.phase_changed",
}


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[RolloutEvent]) -> None:
        """Emit one or more events."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Validates events and writes them to the log."""

    def emit(self, events: Iterable[RolloutEvent]) -> None:
        for event in events:
            # Emitted after the status is stored: invalid events are skipped
            if event.event_type not in ALLOWED_EVENTS:
                logger.error(f"Dropping event with invalid type: {event.event_type}")
                continue
            if not event.rollout_key:
                logger.error(f"Dropping {event.event_type} event without rollout_key")
                continue

            self._record(event)

            logger.info(f"[EVENT] {event.event_type} | rollout={event.rollout_key} | {event.metadata}")

    def _record(self, event: RolloutEvent) -> None:
        pass


class RecordingEventEmitter(LoggingEventEmitter):
    """Keeps events in memory as well (tests, development)."""

    def __init__(self):
        self.events: List[RolloutEvent] = []

    def _record(self, event: RolloutEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[RolloutEvent]:
        return [e for e in self.events if e.event_type == event_type]


class MultiEventEmitter(EventEmitter):
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[RolloutEvent]) -> None:
        """Emit to all emitters."""
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)

