"""Configuration management for the hive engine."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LLMConfig:
    """OpenAI-compatible model endpoint configuration."""

    api_key: str
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    max_concurrent: int = 50


@dataclass(frozen=True)
class DatabaseConfig:
    """Location of the sqlite store shared by the scheduler and the queue."""

    path: str = "bothive.db"


@dataclass(frozen=True)
class PulseConfig:
    """Heartbeat scheduler settings."""

    enabled: bool = True
    interval_seconds: float = 60.0
    batch_size: int = 50
    lease_seconds: int = 300
    log_failures: bool = False


@dataclass(frozen=True)
class WorkforceConfig:
    """Heavy orchestration queue settings."""

    worker_enabled: bool = True
    max_iterations: int = 3
    max_agents: int = 5
    poll_interval_seconds: float = 1.0
    lease_seconds: int = 900
    retention_seconds: int = 24 * 60 * 60


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    llm: Optional[LLMConfig] = None
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    pulse: PulseConfig = field(default_factory=PulseConfig)
    workforce: WorkforceConfig = field(default_factory=WorkforceConfig)
    environment: str = "development"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        api_key = os.getenv("OPENAI_API_KEY")

        llm_config = None
        if api_key:
            llm_config = LLMConfig(
                api_key=api_key,
                base_url=os.getenv("OPENAI_BASE_URL") or None,
                model=os.getenv("BOTHIVE_MODEL", "gpt-4o-mini"),
                max_concurrent=int(os.getenv("BOTHIVE_LLM_MAX_CONCURRENT", "50")),
            )

        return cls(
            llm=llm_config,
            database=DatabaseConfig(path=os.getenv("BOTHIVE_DB_PATH", "bothive.db")),
            pulse=PulseConfig(
                enabled=_env_bool("BOTHIVE_PULSE_ENABLED", True),
                interval_seconds=float(os.getenv("BOTHIVE_PULSE_INTERVAL", "60")),
                batch_size=int(os.getenv("BOTHIVE_PULSE_BATCH_SIZE", "50")),
                lease_seconds=int(os.getenv("BOTHIVE_PULSE_LEASE_SECONDS", "300")),
                log_failures=_env_bool("BOTHIVE_PULSE_LOG_FAILURES", False),
            ),
            workforce=WorkforceConfig(
                worker_enabled=_env_bool("BOTHIVE_WORKFORCE_WORKER", True),
                max_iterations=int(os.getenv("BOTHIVE_WORKFORCE_MAX_ITERATIONS", "3")),
                max_agents=int(os.getenv("BOTHIVE_WORKFORCE_MAX_AGENTS", "5")),
                poll_interval_seconds=float(os.getenv("BOTHIVE_WORKFORCE_POLL_INTERVAL", "1")),
                lease_seconds=int(os.getenv("BOTHIVE_WORKFORCE_LEASE_SECONDS", "900")),
                retention_seconds=int(os.getenv("BOTHIVE_WORKFORCE_RETENTION_SECONDS", "86400")),
            ),
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("BOTHIVE_LOG_LEVEL", "INFO"),
        )


# Global config instance
config = Config.from_env()
