"""
entitydb - Entity-style database access over DB-API drivers.

Layers, leaf first:
- entitydb.core: errors, Result, logging, settings, protocols
- entitydb.entity / entitydb.page: records and pagination
- entitydb.sql: conditions, SqlBuilder, statements, raw SQL executor
- entitydb.dialect: per-backend SQL generation
- entitydb.ds / entitydb.cache: data sources and the per-thread connection cache
- entitydb.runner / entitydb.db: CRUD runner, Db and Session
- entitydb.meta: table, column, key and index metadata
"""

__version__ = "0.1.0"

from entitydb.cache import ConnectionCache, GroupedConnection
from entitydb.connection import IsolationLevel, ManagedConnection, Savepoint
from entitydb.core import *  # noqa
from entitydb.core.logging import configure_logging, configure_logging_from_settings, get_logger
from entitydb.core.settings import DbSettings, load_settings
from entitydb.db import AbstractDb, Db, Session
from entitydb.dialect import Dialect, get_dialect
from entitydb.ds import DataSource, DbApiDataSource, PooledDataSource, SqliteDataSource, create_data_source
from entitydb.entity import Entity
from entitydb.handlers import (
    BeanHandler,
    BeanListHandler,
    EntityHandler,
    EntityListHandler,
    EntitySetHandler,
    NumberHandler,
    PageResultHandler,
    StringHandler,
    ValueListHandler,
)
from entitydb.meta import TableMeta, create_limited_entity, get_column_names, get_primary_keys, get_table_meta, get_tables
from entitydb.page import Direction, Order, Page, PageResult
from entitydb.runner import DialectRunner
from entitydb.sql import Condition, LikeType, Query, QuoteWrapper, SqlBuilder, SqlLog
