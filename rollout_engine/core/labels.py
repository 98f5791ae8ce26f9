"""Typed label and annotation keys shared with other components.

Other components signal through these string contracts (pod-template-hash on
replica sets, scale-down deadline on retiring replica sets, controller
instance id on rollouts), so each key is declared once here and read or
written only through the accessors below.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Optional

from rollout_engine.core.errors import RolloutValidationError

logger = logging.getLogger(__name__)


_NAME = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_DNS_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_LABEL_VALUE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")

DEADLINE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class KeyKind(Enum):
    LABEL = "label"
    ANNOTATION = "annotation"


@dataclass(frozen=True)
class MetadataKey:
    """A label or annotation key with validated accessors."""

    key: str
    kind: KeyKind = KeyKind.LABEL

    def __post_init__(self):
        prefix, _, name = self.key.rpartition("/")
        if not name or len(name) > 63 or not _NAME.match(name):
            raise RolloutValidationError(f"invalid metadata key name: {self.key!r}")
        if prefix and (len(prefix) > 253 or not _DNS_SUBDOMAIN.match(prefix)):
            raise RolloutValidationError(f"invalid metadata key prefix: {self.key!r}")

    def validate_value(self, value: str) -> str:
        if not isinstance(value, str):
            raise RolloutValidationError(f"{self.key}: value must be a string")
        if self.kind == KeyKind.LABEL and (len(value) > 63 or not _LABEL_VALUE.match(value)):
            raise RolloutValidationError(f"{self.key}: invalid label value {value!r}")
        return value

    def get(self, metadata: Optional[Mapping[str, str]]) -> Optional[str]:
        if not metadata:
            return None
        return metadata.get(self.key)

    def set(self, metadata: Optional[Mapping[str, str]], value: str) -> Dict[str, str]:
        """Return a copy of `metadata` with this key set."""
        updated = dict(metadata or {})
        updated[self.key] = self.validate_value(value)
        return updated

    def remove(self, metadata: Optional[Mapping[str, str]]) -> Dict[str, str]:
        updated = dict(metadata or {})
        updated.pop(self.key, None)
        return updated


# ============================================
# KEYS
# ============================================

# Distinguishes replica sets (and their pods) of different revisions
POD_TEMPLATE_HASH = MetadataKey("rollouts-pod-template-hash")

# Time after which a retired stable replica set may be scaled to zero
SCALE_DOWN_DEADLINE = MetadataKey("scale-down-deadline", KeyKind.ANNOTATION)

# Partitions rollouts between independent controller instances
CONTROLLER_INSTANCE_ID = MetadataKey("argo-rollouts.argoproj.io/controller-instance-id")

# Set on analysis runs created by a rollout
ROLLOUT_TYPE = MetadataKey("rollout-type")
STEP_INDEX = MetadataKey("step-index")


# ============================================
# ACCESSORS
# ============================================

def get_scale_down_deadline(annotations: Optional[Mapping[str, str]]) -> Optional[datetime]:
    """Parse the scale-down deadline, None if absent or malformed."""
    raw = SCALE_DOWN_DEADLINE.get(annotations)
    if raw is None:
        return None
    try:
        return datetime.strptime(raw, DEADLINE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"Ignoring malformed {SCALE_DOWN_DEADLINE.key} annotation: {raw!r}")
        return None


def set_scale_down_deadline(
    annotations: Optional[Mapping[str, str]],
    deadline: datetime,
) -> Dict[str, str]:
    if deadline.tzinfo is not None:
        deadline = deadline.astimezone(timezone.utc)
    return SCALE_DOWN_DEADLINE.set(annotations, deadline.strftime(DEADLINE_FORMAT))


def can_scale_down(annotations: Optional[Mapping[str, str]], now: datetime) -> bool:
    """True once the replica set's scale-down deadline has passed."""
    deadline = get_scale_down_deadline(annotations)
    if deadline is None:
        return True
    return now >= deadline


def matches_instance_id(labels: Optional[Mapping[str, str]], instance_id: Optional[str]) -> bool:
    """
    Check whether a controller instance owns the object.

    A controller without an instance id only handles unlabeled objects.
    """
    value = CONTROLLER_INSTANCE_ID.get(labels)
    if not instance_id:
        return not value
    return value == instance_id


def get_step_index(labels: Optional[Mapping[str, str]]) -> Optional[int]:
    raw = STEP_INDEX.get(labels)
    if raw is None or not raw.isdigit():
        return None
    return int(raw)
