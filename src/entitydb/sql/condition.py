"""WHERE-clause conditions.

A ``Condition`` is one ``field <operator> value`` predicate.  Conditions
are usually produced from an ``Entity`` used as a filter, where each value
may be a plain value or a small expression::

    Entity.create("user")
        .set("age", "> 18")              # age > ?
        .set("name", "like 'Al%'")       # name LIKE ?
        .set("id", [1, 2, 3])            # id IN (?,?,?)
        .set("deleted_at", None)         # deleted_at IS NULL
        .set("score", "between 1 and 5") # score BETWEEN ? AND ?

Everything renders with ``?`` placeholders; the dialect rewrites them into
its own parameter style.

Tags:
    sql, where, condition, entitydb

Doc-Types:
    api-reference
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"

    def __str__(self) -> str:
        return self.value


class LikeType(str, Enum):
    """Where the wildcard goes in a ``LIKE`` value."""

    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    CONTAINS = "CONTAINS"


def build_like_value(value: str | None, like_type: LikeType, with_like_keyword: bool) -> str | None:
    """``("abc", STARTS_WITH, False)`` → ``"abc%"``; keyword form → ``"LIKE abc%"``."""
    if value is None:
        return None
    if like_type is LikeType.STARTS_WITH:
        result = f"{value}%"
    elif like_type is LikeType.ENDS_WITH:
        result = f"%{value}"
    else:
        result = f"%{value}%"
    return f"LIKE {result}" if with_like_keyword else result


OPERATOR_LIKE = "LIKE"
OPERATOR_IN = "IN"
OPERATOR_IS = "IS"
OPERATOR_IS_NOT = "IS NOT"
OPERATOR_BETWEEN = "BETWEEN"
VALUE_NULL = "NULL"

_OPERATORS = ("<>", "<=", "<", ">=", ">", "=", "!=", OPERATOR_IN)
_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_BETWEEN_SPLIT = re.compile(r"\s+AND\s+", re.IGNORECASE)


def _unwrap_quote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _try_to_number(value: str) -> Any:
    if not _NUMBER.match(value):
        return value
    try:
        number = Decimal(value)
    except InvalidOperation:
        return value
    if number == number.to_integral_value() and "." not in value and "e" not in value.lower():
        return int(number)
    return float(number)


def _is_multi_value(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


class Condition:
    """One predicate of a WHERE clause.

    Args:
        field: column name
        operator: comparison operator (``=``, ``<``, ``IN``, ``LIKE`` ...)
        value: compared value
        second_value: upper bound for ``BETWEEN``
        placeholder: bind values as parameters (``False`` inlines them)
        link: logical operator joining this condition to the previous one
    """

    def __init__(
        self,
        field: str | None = None,
        operator: str = "=",
        value: Any = None,
        *,
        second_value: Any = None,
        placeholder: bool = True,
        link: LogicalOperator = LogicalOperator.AND,
    ):
        self.field = field
        self.operator = operator
        self.value = value
        self.second_value = second_value
        self.placeholder = placeholder
        self.link = link

    @classmethod
    def parse(cls, field: str, expression: Any) -> Condition:
        """Build a condition from a field and a value or expression string."""
        condition = cls(field, "=", expression)
        condition._parse_value()
        return condition

    @classmethod
    def like(cls, field: str, value: str, like_type: LikeType = LikeType.CONTAINS) -> Condition:
        return cls(field, OPERATOR_LIKE, build_like_value(value, like_type, False))

    # ------------------------------------------------------------------ predicates

    def is_operator_between(self) -> bool:
        return self.operator.upper() == OPERATOR_BETWEEN

    def is_operator_in(self) -> bool:
        return self.operator.upper() == OPERATOR_IN

    def is_operator_is(self) -> bool:
        return self.operator.upper() in (OPERATOR_IS, OPERATOR_IS_NOT)

    def is_operator_like(self) -> bool:
        return self.operator.upper() == OPERATOR_LIKE

    def check_value_null(self) -> Condition:
        if self.value is None:
            self.operator = OPERATOR_IS
            self.value = VALUE_NULL
        return self

    # ------------------------------------------------------------------ rendering

    def to_sql(self, params: list[Any] | None = None) -> str:
        """Render ``field OP ?``, appending bound values to ``params``."""
        self.check_value_null()
        parts = [f"{self.field} {self.operator}"]

        if self.is_operator_between():
            parts.append(self._between_part(params))
        elif self.is_operator_in():
            parts.append(self._in_part(params))
        elif self.placeholder and not self.is_operator_is():
            parts.append("?")
            if params is not None:
                params.append(self.value)
        else:
            value = str(self.value)
            parts.append(f"'{value}'" if self.is_operator_like() else value)
        return " ".join(parts)

    def _between_part(self, params: list[Any] | None) -> str:
        if self.placeholder:
            if params is not None:
                params.extend([self.value, self.second_value])
            return f"? {LogicalOperator.AND} ?"
        return f"{self.value} {LogicalOperator.AND} {self.second_value}"

    def _in_part(self, params: list[Any] | None) -> str:
        value = self.value
        if isinstance(value, str):
            values = [v.strip() for v in value.split(",")]
        elif isinstance(value, Iterable):
            values = list(value)
        else:
            values = [value]

        if self.placeholder:
            if params is not None:
                params.extend(values)
            return "(" + ",".join("?" for _ in values) + ")"
        return "(" + ",".join(str(v) for v in values) + ")"

    # ------------------------------------------------------------------ parsing

    def _parse_value(self) -> None:
        value = self.value
        if value is None:
            self.operator = OPERATOR_IS
            self.value = VALUE_NULL
            return

        if _is_multi_value(value):
            self.operator = OPERATOR_IN
            return

        if not isinstance(value, str) or not value.strip():
            return

        text = value.strip()
        lowered = text.lower()
        if lowered in ("= null", "is null"):
            self.operator, self.value, self.placeholder = OPERATOR_IS, VALUE_NULL, False
            return
        if lowered in ("!= null", "is not null"):
            self.operator, self.value, self.placeholder = OPERATOR_IS_NOT, VALUE_NULL, False
            return

        parts = text.split(None, 1)
        if len(parts) < 2:
            return

        first = parts[0].upper()
        rest = parts[1].strip()
        if first in _OPERATORS:
            self.operator = first
            # IN keeps the raw list text, other values become numbers when they parse
            self.value = rest if first == OPERATOR_IN else _try_to_number(rest)
            return

        if first == OPERATOR_LIKE:
            self.operator = OPERATOR_LIKE
            self.value = _unwrap_quote(rest)
            return

        if first == OPERATOR_BETWEEN:
            bounds = _BETWEEN_SPLIT.split(rest, maxsplit=1)
            if len(bounds) < 2:
                return
            self.operator = OPERATOR_BETWEEN
            self.value = _unwrap_quote(bounds[0].strip())
            self.second_value = _unwrap_quote(bounds[1].strip())

    # ------------------------------------------------------------------ dunder

    def copy(self) -> Condition:
        return copy.copy(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Condition):
            return NotImplemented
        return vars(self) == vars(other)

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return self.to_sql()

    def __repr__(self) -> str:
        return (
            f"Condition(field={self.field!r}, operator={self.operator!r}, value={self.value!r}, "
            f"second_value={self.second_value!r}, link={self.link.value})"
        )


def build_conditions(where: Mapping[str, Any] | None) -> list[Condition]:
    """One condition per entry; ``Condition`` values are used as-is."""
    if not where:
        return []
    conditions = []
    for field, value in where.items():
        if isinstance(value, Condition):
            conditions.append(value)
        else:
            conditions.append(Condition.parse(field, value))
    return conditions


class ConditionBuilder:
    """Joins conditions into a WHERE fragment, collecting bound values."""

    def __init__(self, conditions: Iterable[Condition]):
        self.conditions = list(conditions)

    @classmethod
    def of(cls, *conditions: Condition) -> ConditionBuilder:
        return cls(conditions)

    def build(self, params: list[Any] | None = None) -> str:
        fragments: list[str] = []
        for condition in self.conditions:
            if fragments:
                fragments.append(str(condition.link))
            fragments.append(condition.to_sql(params))
        return " ".join(fragments)


__all__ = [
    "LogicalOperator",
    "LikeType",
    "Condition",
    "ConditionBuilder",
    "build_conditions",
    "build_like_value",
]
