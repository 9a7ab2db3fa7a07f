"""SQL building and execution.

Modules
-------
condition   WHERE conditions parsed from entity values
wrapper     Identifier quoting
query       Tables + conditions + fields + page
builder     ``SqlBuilder`` for INSERT / UPDATE / DELETE / SELECT
statement   ``Statement`` (prepared statement analogue) and ``SqlLog``
executor    Raw SQL helpers (``SqlExecutor``, ``:name`` parameters)
"""

from entitydb.sql.builder import Join, SqlBuilder, validate_entity
from entitydb.sql.condition import (
    Condition,
    ConditionBuilder,
    LikeType,
    LogicalOperator,
    build_conditions,
    build_like_value,
)
from entitydb.sql.executor import SqlExecutor, convert_named
from entitydb.sql.query import Query
from entitydb.sql.statement import SqlLog, Statement
from entitydb.sql.wrapper import QuoteWrapper

__all__ = [
    "Condition",
    "ConditionBuilder",
    "Join",
    "LikeType",
    "LogicalOperator",
    "Query",
    "QuoteWrapper",
    "SqlBuilder",
    "SqlExecutor",
    "SqlLog",
    "Statement",
    "build_conditions",
    "build_like_value",
    "convert_named",
    "validate_entity",
]
