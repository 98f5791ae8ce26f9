#rollout_engine\controller\config.py
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from rollout_engine.core.state_machine import ReconcileConfig


@dataclass(frozen=True)
class ControllerConfig:
    poll_interval_seconds: float = 5.0
    max_workers: int = 4

    # Per-rollout backoff after transient errors: base, 3x base, 9x base ...
    backoff_base_seconds: float = 10.0
    backoff_max_seconds: float = 300.0

    def backoff_delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.backoff_base_seconds * (3 ** (failures - 1)), self.backoff_max_seconds)


class ControllerSettings(BaseSettings):
    """Controller configuration from ROLLOUTS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ROLLOUTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Controller instance; rollouts labelled for another instance are skipped
    instance_id: Optional[str] = None

    poll_interval_seconds: float = Field(default=5.0, gt=0)
    max_workers: int = Field(default=4, ge=1, le=64)
    scale_down_delay_seconds: int = Field(default=30, ge=0)

    backoff_base_seconds: float = Field(default=10.0, gt=0)
    backoff_max_seconds: float = Field(default=300.0, gt=0)
    conflict_retries: int = Field(default=3, ge=0, le=10)

    # Cluster agent; the in-memory observer is used when unset
    observer_url: Optional[str] = None
    observer_timeout_seconds: int = Field(default=10, ge=1)

    # Use the in-memory repository instead of the SQL store
    in_memory: bool = False

    # HTTP API bind address
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8080, ge=1, le=65535)

    def controller_config(self) -> ControllerConfig:
        return ControllerConfig(
            poll_interval_seconds=self.poll_interval_seconds,
            max_workers=self.max_workers,
            backoff_base_seconds=self.backoff_base_seconds,
            backoff_max_seconds=self.backoff_max_seconds,
        )

    def reconcile_config(self) -> ReconcileConfig:
        return ReconcileConfig(scale_down_delay_seconds=self.scale_down_delay_seconds)


@lru_cache
def get_controller_settings() -> ControllerSettings:
    return ControllerSettings()
