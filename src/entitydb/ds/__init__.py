"""Data sources.

Modules
-------
base     ``DataSource`` base class
sqlite   ``SqliteDataSource`` (``sqlite3``)
dbapi    ``DbApiDataSource`` over any DB-API ``connect`` callable
pooled   ``PooledDataSource`` (SQLAlchemy connection pool)
factory  ``create_data_source`` from URL / settings
"""

from entitydb.ds.base import DataSource
from entitydb.ds.dbapi import DbApiDataSource
from entitydb.ds.factory import create_data_source
from entitydb.ds.pooled import PooledDataSource, create_pool_engine
from entitydb.ds.sqlite import SqliteDataSource

__all__ = [
    "DataSource",
    "DbApiDataSource",
    "PooledDataSource",
    "SqliteDataSource",
    "create_data_source",
    "create_pool_engine",
]
