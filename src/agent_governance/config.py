"""
This module defines the configuration settings for the governance engine.

It uses Pydantic's `BaseSettings` to create a strongly-typed settings object that
is populated from `GOVERNANCE_*` environment variables. The same object is handed
to the database layer, the governance service and the scheduler, so storage
timeouts, retry budgets, ranking parameters and logging are all read from one
place.
"""
import logging
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

GLOBAL_SCOPE = "global"
DEFAULT_CONTEXTS = ["code", "debug", "deploy", "db", "docs", "planning"]


class GovernanceSettings(BaseSettings):
    """
    Configuration model for the governance engine.

    Attributes:
        database_path: The file path for the SQLite database.
        default_damping: Damping factor used when a scope has none stored.
        iterations: Number of power-iteration rounds per governance run.
        initial_score: Raw score given to a node on first registration.
        contexts: Context scopes seeded into the database at startup.
        storage_timeout_seconds: SQLite busy timeout for every connection.
        storage_retry_attempts: Attempts per storage call before giving up.
        storage_retry_delay_seconds: First backoff delay, doubled per retry.
        record_timeout_seconds: Busy timeout for node registration and
            transition recording, and the wait bound for their async variants.
        schedule_interval_seconds: Cadence of the governance scheduler.
        log_level: Level for the `agent_governance` loggers.
        log_format: Format string for the stdout log handler.
        storage_log_level: Level for the storage logger, which reports every
            retried or failed SQLite call.
    """

    model_config = SettingsConfigDict(env_prefix="GOVERNANCE_")

    # SQLite database file path (relative or absolute)
    database_path: str = "./governance.db"

    # Ranking
    default_damping: float = Field(default=0.85, gt=0.0, lt=1.0)
    iterations: int = Field(default=20, ge=0)
    initial_score: float = 0.1
    contexts: List[str] = Field(default_factory=lambda: list(DEFAULT_CONTEXTS))

    # Storage I/O bounds
    storage_timeout_seconds: float = Field(default=5.0, gt=0.0)
    storage_retry_attempts: int = Field(default=3, ge=1)
    storage_retry_delay_seconds: float = Field(default=0.05, ge=0.0)
    record_timeout_seconds: float = Field(default=2.0, gt=0.0)

    # Scheduler
    schedule_interval_seconds: float = Field(default=300.0, gt=0.0)

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    storage_log_level: str = "WARNING"

    @field_validator("log_level", "storage_log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"unknown log level {value!r}")
        return normalized
