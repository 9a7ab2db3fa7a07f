"""Entity: an ordered, schema-less row / condition record.

An ``Entity`` is a ``dict`` from column name to value that also knows the
table it belongs to.  The same type describes a row to write
(``insert`` / ``update``) and a set of conditions to match (``find`` /
``delete``)::

    user = Entity.create("user").set("name", "Alice").set("age", 30)
    db.insert(user)
    db.find(Entity.create("user").set("age", "> 18"))

``field_names`` optionally restricts the columns a query selects.

For callers who want checked row shapes, ``Entity.parse`` reads pydantic
models and dataclasses and ``Entity.to_model`` converts back.

Tags:
    entity, record, row, active-record, entitydb

Doc-Types:
    api-reference
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel

M = TypeVar("M")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_underline_case(name: str) -> str:
    """``UserAccount`` / ``userAccount`` → ``user_account``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


def _object_fields(obj: Any) -> dict[str, Any]:
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, Mapping):
        return dict(obj)
    return {k: v for k, v in vars(obj).items() if not k.startswith("_")}


class Entity(dict[str, Any]):
    """Insertion-ordered record with a table name.

    Args:
        table_name: table this record belongs to
        fields: initial column values
    """

    def __init__(
        self,
        table_name: str | None = None,
        fields: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
        **kwargs: Any,
    ):
        super().__init__()
        if fields is not None:
            self.update(fields)
        if kwargs:
            self.update(kwargs)
        self.table_name = table_name
        self._field_names: dict[str, None] | None = None

    # ------------------------------------------------------------------ factories

    @classmethod
    def create(cls, table_name: str | None = None) -> Entity:
        return cls(table_name)

    of = create

    @classmethod
    def parse(
        cls,
        obj: Any,
        *,
        to_underline: bool = False,
        ignore_none: bool = False,
        table_name: str | None = None,
    ) -> Entity:
        """Build an entity from a pydantic model, dataclass, mapping or object.

        The table name defaults to the class name, lower-first or
        snake-cased when ``to_underline`` is set.  Mappings get no default
        table name.
        """
        if table_name is None and not isinstance(obj, Mapping):
            simple_name = type(obj).__name__
            table_name = to_underline_case(simple_name) if to_underline else _lower_first(simple_name)

        entity = cls(table_name)
        for key, value in _object_fields(obj).items():
            if ignore_none and value is None:
                continue
            entity[to_underline_case(key) if to_underline else key] = value
        return entity

    # ------------------------------------------------------------------ field names

    @property
    def field_names(self) -> list[str] | None:
        """Columns to select, or ``None`` for all columns."""
        if self._field_names is None:
            return None
        return list(self._field_names)

    def set_field_names(self, *field_names: str) -> Entity:
        """Restrict selected columns; an empty call leaves the restriction as is."""
        names = _flatten(field_names)
        if names:
            self._field_names = dict.fromkeys(names)
        return self

    def add_field_names(self, *field_names: str) -> Entity:
        names = _flatten(field_names)
        if names:
            if self._field_names is None:
                return self.set_field_names(*names)
            self._field_names.update(dict.fromkeys(names))
        return self

    def set_table_name(self, table_name: str | None) -> Entity:
        self.table_name = table_name
        return self

    # ------------------------------------------------------------------ put / set

    def set(self, field: str, value: Any) -> Entity:
        """Set a column value and return ``self`` for chaining."""
        self[field] = value
        return self

    def set_ignore_none(self, field: str, value: Any) -> Entity:
        if value is not None:
            self[field] = value
        return self

    def filter_new(self, *keys: str) -> Entity:
        """New entity (same table and field names) with only ``keys``."""
        result = Entity(self.table_name)
        result._field_names = None if self._field_names is None else dict(self._field_names)
        for key in keys:
            if key in self:
                result[key] = self[key]
        return result

    def remove_new(self, *keys: str) -> Entity:
        """New entity without ``keys``."""
        result = self.copy()
        for key in keys:
            result.pop(key, None)
        return result

    def copy(self) -> Entity:
        result = Entity(self.table_name, self)
        result._field_names = None if self._field_names is None else dict(self._field_names)
        return result

    __copy__ = copy

    # ------------------------------------------------------------------ typed getters

    def get_str(self, field: str, default: str | None = None, encoding: str = "utf-8") -> str | None:
        value = self.get(field)
        if value is None:
            return default
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode(encoding)
        return str(value)

    def get_int(self, field: str, default: int | None = None) -> int | None:
        value = self.get(field)
        if value is None:
            return default
        return int(value)

    def get_float(self, field: str, default: float | None = None) -> float | None:
        value = self.get(field)
        if value is None:
            return default
        return float(value)

    def get_bool(self, field: str, default: bool | None = None) -> bool | None:
        value = self.get(field)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "y", "on"}
        return bool(value)

    # ------------------------------------------------------------------ typed mapping

    def to_model(self, model: type[M]) -> M:
        """Convert to a pydantic model or dataclass.

        Column names are matched to model fields case-insensitively, so rows
        from backends that upper-case identifiers still map.
        """
        if isinstance(model, type) and issubclass(model, BaseModel):
            names = list(model.model_fields)
        elif dataclasses.is_dataclass(model):
            names = [f.name for f in dataclasses.fields(model)]
        else:
            return model(**self)  # type: ignore[call-arg]

        by_lower = {key.lower(): value for key, value in self.items()}
        values = {}
        for name in names:
            if name in self:
                values[name] = self[name]
            elif name.lower() in by_lower:
                values[name] = by_lower[name.lower()]

        if issubclass(model, BaseModel):
            return model.model_validate(values)  # type: ignore[return-value]
        return model(**values)

    # ------------------------------------------------------------------ dunder

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Entity) and self.table_name != other.table_name:
            return False
        return super().__eq__(other)

    def __ne__(self, other: object) -> bool:
        return not self == other

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"Entity(table_name={self.table_name!r}, "
            f"field_names={self.field_names!r}, fields={dict.__repr__(self)})"
        )


def _flatten(names: Iterable[Any]) -> list[str]:
    result: list[str] = []
    for name in names:
        if name is None:
            continue
        if isinstance(name, str):
            result.append(name)
        else:
            result.extend(name)
    return result


__all__ = [
    "Entity",
    "to_underline_case",
]
