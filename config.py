# config.py
# Runtime configuration, read once from environment variables at startup

import os
from dataclasses import dataclass
from typing import Mapping

from pydantic import BaseModel, Field, ValidationError

DEFAULT_MAX_ROWS = 1000
DEFAULT_TIMEOUT_MS = 5000


class ConfigurationError(RuntimeError):
    """Raised when the environment does not describe a usable deployment."""


@dataclass(frozen=True)
class ExecutionLimits:
    """Row cap and wall-clock budget applied to every sandbox query."""

    max_rows: int = DEFAULT_MAX_ROWS
    timeout_ms: int = DEFAULT_TIMEOUT_MS


class Settings(BaseModel):
    # ---- Sandbox limits (never taken from request payloads) ----
    max_rows: int = Field(DEFAULT_MAX_ROWS, ge=1)
    query_timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, ge=1)
    max_query_length: int = Field(20000, ge=1)

    # ---- Content database (write-capable, trusted code only) ----
    db_host: str = "localhost"
    db_port: int = 3306
    db_name: str = "sqlstudio"
    db_user: str | None = None
    db_password: str | None = None
    db_pool_size: int = Field(5, ge=1, le=32)

    # ---- Sandbox database (restricted read-only identity) ----
    readonly_db_host: str = "localhost"
    readonly_db_port: int = 3306
    sandbox_db_name: str = "sqlstudio_sandbox"
    readonly_user: str | None = None
    readonly_password: str | None = None
    readonly_pool_size: int = Field(10, ge=1, le=32)

    connect_timeout_ms: int = Field(5000, ge=1)
    pool_acquire_timeout_ms: int = Field(30000, ge=1)
    ssl_disabled: bool = False

    app_env: str = "production"
    log_level: str = "INFO"

    @property
    def execution_limits(self) -> ExecutionLimits:
        return ExecutionLimits(max_rows=self.max_rows, timeout_ms=self.query_timeout_ms)

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        db_host = env.get("DB_HOST", "localhost")
        db_port = env.get("DB_PORT", "3306")

        values = {
            "max_rows": env.get("MAX_ROWS_RETURN", "1000"),
            "query_timeout_ms": env.get("QUERY_TIMEOUT_MS", "5000"),
            "max_query_length": env.get("MAX_QUERY_LENGTH", "20000"),
            "db_host": db_host,
            "db_port": db_port,
            "db_name": env.get("DB_NAME", "sqlstudio"),
            "db_user": env.get("DB_USER"),
            "db_password": env.get("DB_PASSWORD"),
            "db_pool_size": env.get("DB_POOL_SIZE", "5"),
            "readonly_db_host": env.get("READONLY_DB_HOST", db_host),
            "readonly_db_port": env.get("READONLY_DB_PORT", db_port),
            "sandbox_db_name": env.get("SANDBOX_DB_NAME", "sqlstudio_sandbox"),
            "readonly_user": env.get("DB_READONLY_USER"),
            "readonly_password": env.get("DB_READONLY_PASSWORD"),
            "readonly_pool_size": env.get("READONLY_POOL_SIZE", "10"),
            "connect_timeout_ms": env.get("DB_CONNECT_TIMEOUT_MS", "5000"),
            "pool_acquire_timeout_ms": env.get("POOL_ACQUIRE_TIMEOUT_MS", "30000"),
            "ssl_disabled": env.get("DB_SSL_DISABLED", "false").lower() in ("1", "true", "yes"),
            "app_env": env.get("APP_ENV", "production"),
            "log_level": env.get("LOG_LEVEL", "INFO").upper(),
        }

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
