# rollout_engine/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class RolloutError(Exception):
    """Base class for all rollout engine errors."""
    pass


# -----------------------------
# Validation / Domain Errors
# -----------------------------

class RolloutValidationError(RolloutError):
    """Malformed rollout input (bad wire payload, invalid label value)."""
    pass


# -----------------------------
# Observation Errors
# -----------------------------

class ObservationUnavailable(RolloutError):
    """Replica set / pod state could not be read. Retried with backoff."""
    pass


# -----------------------------
# Persistence Errors
# -----------------------------

class RolloutPersistenceError(RolloutError):
    pass


class RolloutAlreadyExists(RolloutPersistenceError):
    pass


class RolloutNotFound(RolloutPersistenceError):
    pass


class RolloutConcurrencyError(RolloutPersistenceError):
    """Write rejected because the stored resource version moved on."""
    pass
