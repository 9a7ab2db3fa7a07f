"""Data source factory: create data sources from URL strings.

Supported URLs
--------------
==================  ==========================================  ==============
URL                 Example                                     Data source
==================  ==========================================  ==============
``memory``          ``memory`` or ``:memory:`` or ``None``       SQLite RAM
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``(file path)``     ``./data/app.db``                            SQLite file
``(any other)``     ``postgresql+psycopg2://u:pw@host/db``       SQLAlchemy pool
==================  ==========================================  ==============

``pooled=True`` (or ``DbSettings.pooled``) routes SQLite URLs through the
SQLAlchemy pool as well.
"""

from __future__ import annotations

import re

from entitydb.core.errors import ConfigError
from entitydb.core.logging import get_logger
from entitydb.core.settings import DbSettings
from entitydb.ds.base import DataSource
from entitydb.ds.pooled import PooledDataSource
from entitydb.ds.sqlite import SqliteDataSource

logger = get_logger(__name__)

_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://")


def _parse_url(url: str | None) -> tuple[str, str]:
    """Parse a database URL into (scheme, target).

    ``scheme`` is ``"memory"``, ``"sqlite"``, ``"file"`` or the URL's own
    scheme; ``target`` is the SQLite path or the full URL.
    """
    if url is None or url.strip() in ("", "memory", ":memory:"):
        return "memory", ":memory:"
    url = url.strip()

    for prefix in ("sqlite:///", "sqlite://"):
        if url.startswith(prefix):
            path = url[len(prefix):]
            if not path or path == ":memory:":
                return "memory", ":memory:"
            return "sqlite", path

    match = _SCHEME.match(url)
    if match is None:
        # bare file path, SQLite
        return "file", url
    return match.group(1).lower(), url


def create_data_source(
    url: str | None = None,
    *,
    settings: DbSettings | None = None,
    pooled: bool | None = None,
) -> DataSource:
    """Create a data source from a URL, path or keyword.

    Args:
        url: database URL; defaults to ``settings.url``
        settings: pool sizing, forced dialect and the default URL
        pooled: force (or forbid) the SQLAlchemy pool for SQLite URLs

    Raises:
        ConfigError: the URL names no usable backend
    """
    if url is not None and not isinstance(url, str):
        raise ConfigError(f"Database URL must be a string, got {type(url).__name__}")
    settings = settings or DbSettings()
    if url is None:
        url = settings.url
    if pooled is None:
        pooled = settings.pooled

    scheme, target = _parse_url(url)

    if scheme in ("memory", "sqlite", "file") and not pooled:
        ds: DataSource = SqliteDataSource(target)
    elif scheme in ("memory", "sqlite", "file"):
        sqlite_url = "sqlite://" if scheme == "memory" else f"sqlite:///{target}"
        ds = PooledDataSource(sqlite_url, dialect=settings.dialect)
    else:
        ds = PooledDataSource(
            target,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            dialect=settings.dialect,
        )

    logger.info("data_source_created", data_source=ds.name, dialect=ds.dialect.name, kind=type(ds).__name__)
    return ds


__all__ = [
    "create_data_source",
]
