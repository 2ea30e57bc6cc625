"""
Settings - coordinator configuration from environment variables

Values come from the process environment; main.py loads a .env file
into it first with python-dotenv.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class CoordinatorSettings:
    """Coordinator settings"""
    persistence_backend: str = "memory"          # memory | file | redis | sql
    persistence_dir: str = "./task_storage"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "task_snapshot:"
    database_url: Optional[str] = None            # Database falls back to its own default
    event_store_enabled: bool = False
    task_retention_hours: float = 24
    cleanup_interval_seconds: float = 3600
    status_log_interval_seconds: float = 600
    dependency_chain_max_depth: int = 50
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CoordinatorSettings":
        """
        Read settings from environment variables

        Args:
            env: mapping to read from (default: os.environ)

        Raises:
            ValueError: a numeric variable does not parse
        """
        env = os.environ if env is None else env
        return cls(
            persistence_backend=env.get("PERSISTENCE_BACKEND", "memory").strip().lower(),
            persistence_dir=env.get("PERSISTENCE_DIR", "./task_storage"),
            redis_url=env.get("REDIS_URL", "redis://localhost:6379/0"),
            redis_key_prefix=env.get("REDIS_KEY_PREFIX", "task_snapshot:"),
            database_url=env.get("DATABASE_URL") or None,
            event_store_enabled=_get_bool(env, "EVENT_STORE_ENABLED", False),
            task_retention_hours=float(env.get("TASK_RETENTION_HOURS", "24")),
            cleanup_interval_seconds=float(env.get("CLEANUP_INTERVAL_SECONDS", "3600")),
            status_log_interval_seconds=float(env.get("STATUS_LOG_INTERVAL_SECONDS", "600")),
            dependency_chain_max_depth=int(env.get("DEPENDENCY_CHAIN_MAX_DEPTH", "50")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
