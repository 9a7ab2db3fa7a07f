"""Database settings for entitydb.

``DbSettings`` gathers everything needed to build a data source and a
``Db`` from the environment: the database URL, pool sizing, SQL logging
switches and identifier quoting.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** bad pool sizes fail at startup, not mid-query
    - **Environment-driven:** ``ENTITYDB_URL``, ``ENTITYDB_SHOW_SQL`` ...
    - **Sensible defaults:** a file-backed SQLite database out of the box

Examples:
    >>> from entitydb.core.settings import DbSettings
    >>> DbSettings(url="sqlite:///app.db", show_sql=True).show_sql
    True

Tags:
    settings, configuration, pydantic, environment, entitydb

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class DbSettings(BaseSettings):
    """Settings for connecting to and logging a database.

    Fields
    ──────
    url           : Database URL or SQLite file path
    dialect       : Force a dialect name (auto-detected from url otherwise)
    pooled        : Use a SQLAlchemy connection pool for non-file URLs too
    pool_size     : Pool size (pooled data sources only)
    max_overflow  : Extra connections allowed beyond pool_size
    pool_timeout  : Seconds to wait for a pooled connection
    show_sql      : Log every statement
    format_sql    : Collapse whitespace in logged statements
    show_params   : Log bound parameters with the statement
    sql_level     : Log level used for statement logging
    quote_char    : Identifier quote character (e.g. ``"`` or `````)
    log_level     : Structlog log level
    json_logs     : JSON log output (None = auto-detect tty)
    """

    model_config = SettingsConfigDict(
        env_prefix="ENTITYDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    url: str = "sqlite:///entitydb.db"
    dialect: str | None = None

    # ── Pool ─────────────────────────────────────────────────────
    pooled: bool = False
    pool_size: int = Field(default=5, gt=0)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, gt=0)

    # ── SQL logging ──────────────────────────────────────────────
    show_sql: bool = False
    format_sql: bool = False
    show_params: bool = False
    sql_level: str = "DEBUG"

    # ── SQL generation ───────────────────────────────────────────
    quote_char: str | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("sql_level", "log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("quote_char")
    @classmethod
    def _check_quote_char(cls, value: str | None) -> str | None:
        if value is not None and len(value) != 1:
            raise ValueError("quote_char must be a single character")
        return value


def load_settings(**overrides: Any) -> DbSettings:
    """Load settings from the environment, applying keyword overrides."""
    return DbSettings(**overrides)


__all__ = [
    "DbSettings",
    "load_settings",
]
