#rollout_engine\infrastructure\postgres\config.py

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Database configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # PostgreSQL connection
    postgres_user: str = "rollouts"
    postgres_password: str = "rollouts"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "rollouts"

    # Overrides the postgres_* fields (e.g. sqlite:///rollouts.db)
    rollouts_database_url: Optional[str] = None

    # Connection pool
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 3600

    # SQLAlchemy
    echo_sql: bool = False

    @property
    def database_url(self) -> str:
        if self.rollouts_database_url:
            return self.rollouts_database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache
def get_settings() -> StoreSettings:
    return StoreSettings()
