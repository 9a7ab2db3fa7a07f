"""Identifier quoting.

``QuoteWrapper('"')`` turns ``user`` into ``"user"`` and
``public.user`` into ``"public"."user"`` so table and column names never
collide with SQL keywords.  ``*`` and already-quoted names are left alone.
"""

from __future__ import annotations

from collections.abc import Iterable

from entitydb.entity import Entity
from entitydb.sql.condition import Condition


class QuoteWrapper:
    def __init__(self, pre: str | None = None, suf: str | None = None):
        self.pre = pre
        self.suf = suf if suf is not None else pre

    @property
    def enabled(self) -> bool:
        return bool(self.pre)

    def wrap(self, name: str | None) -> str | None:
        if not self.enabled or not name or name == "*":
            return name
        stripped = name.strip()
        # expressions and aliases are not identifiers
        if " " in stripped or "(" in stripped:
            return name
        if stripped.startswith(self.pre) and stripped.endswith(self.suf):
            return name
        return ".".join(f"{self.pre}{part}{self.suf}" for part in stripped.split("."))

    def wrap_all(self, names: Iterable[str]) -> list[str]:
        return [self.wrap(name) for name in names]  # type: ignore[misc]

    def wrap_entity(self, entity: Entity) -> Entity:
        """Copy of ``entity`` with wrapped table and column names."""
        if not self.enabled:
            return entity
        wrapped = Entity(self.wrap(entity.table_name))
        for field, value in entity.items():
            wrapped[self.wrap(field)] = value  # type: ignore[index]
        names = entity.field_names
        if names:
            wrapped.set_field_names(*self.wrap_all(names))
        return wrapped

    def wrap_conditions(self, conditions: Iterable[Condition]) -> list[Condition]:
        if not self.enabled:
            return list(conditions)
        result = []
        for condition in conditions:
            wrapped = condition.copy()
            wrapped.field = self.wrap(condition.field)
            result.append(wrapped)
        return result

    def unwrap(self, name: str | None) -> str | None:
        if not self.enabled or not name:
            return name
        return ".".join(
            part[len(self.pre) : len(part) - len(self.suf)]
            if part.startswith(self.pre) and part.endswith(self.suf) and len(part) >= 2
            else part
            for part in name.split(".")
        )

    def __repr__(self) -> str:
        return f"QuoteWrapper(pre={self.pre!r}, suf={self.suf!r})"


__all__ = ["QuoteWrapper"]
