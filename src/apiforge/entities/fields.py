"""Field builder DSL.

Usage:
    title = string.min(1).max(200)
    body = text.optional()
    author = belongs_to(lambda: user)

Builders are immutable: every modifier returns a new builder, so a shared
base definition can be specialized in several entities independently.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any, Union

from apiforge.entities.types import (
    FIELD_TYPES,
    ON_DELETE_ACTIONS,
    Entity,
    FieldDef,
    RelationDef,
    resolve_entity,
)


class FieldBuilder:
    """Immutable builder for scalar fields."""

    __slots__ = ("_def",)

    def __init__(self, type_or_def: str | FieldDef):
        if isinstance(type_or_def, FieldDef):
            self._def = type_or_def
        else:
            if type_or_def not in FIELD_TYPES:
                raise ValueError(f"Unknown field type: {type_or_def!r}")
            self._def = FieldDef(type=type_or_def)

    def _with(self, **changes: Any) -> FieldBuilder:
        return FieldBuilder(replace(self._def, **changes))

    def optional(self) -> FieldBuilder:
        """Mark field as optional (nullable)."""
        return self._with(optional=True)

    def unique(self) -> FieldBuilder:
        return self._with(unique=True)

    def default(self, value: Any) -> FieldBuilder:
        return self._with(default=value)

    def min(self, value: float) -> FieldBuilder:
        """Minimum length (strings) or value (numbers)."""
        return self._with(min=value)

    def max(self, value: float) -> FieldBuilder:
        """Maximum length (strings) or value (numbers)."""
        return self._with(max=value)

    def build(self, name: str | None = None) -> FieldDef:
        return self._def

    def __repr__(self) -> str:
        return f"FieldBuilder({self._def!r})"


EntityTarget = Union[Entity, Any, Callable[[], Any]]


class RelationBuilder:
    """Immutable builder for relation fields."""

    __slots__ = ("_type", "_target", "_foreign_key", "_on_delete", "_optional")

    def __init__(
        self,
        type: str,
        target: Callable[[], Any],
        foreign_key: str | None = None,
        on_delete: str | None = None,
        optional: bool = False,
    ):
        self._type = type
        self._target = target
        self._foreign_key = foreign_key
        self._on_delete = on_delete
        self._optional = optional

    def _clone(self, **changes: Any) -> RelationBuilder:
        values = {
            "foreign_key": self._foreign_key,
            "on_delete": self._on_delete,
            "optional": self._optional,
        }
        values.update(changes)
        return RelationBuilder(self._type, self._target, **values)

    def foreign_key(self, key: str) -> RelationBuilder:
        return self._clone(foreign_key=key)

    def on_delete(self, action: str) -> RelationBuilder:
        if action not in ON_DELETE_ACTIONS:
            raise ValueError(f"Unknown onDelete action: {action!r}")
        return self._clone(on_delete=action)

    def optional(self) -> RelationBuilder:
        return self._clone(optional=True)

    def build(self, name: str) -> FieldDef:
        """Build the field definition for a relation declared as `name`."""
        target = self._target

        def resolved() -> Entity:
            return resolve_entity(target())

        return FieldDef(
            type="string",
            optional=self._optional or self._type != "belongsTo",
            unique=self._type == "hasOne",
            relation=RelationDef(
                type=self._type,
                entity=resolved,
                foreign_key=self._foreign_key or f"{name}Id",
                references="id",
                on_delete=self._on_delete,
            ),
        )


def _lazy(target: EntityTarget) -> Callable[[], Any]:
    # Entities and builders are wrapped; anything else callable is already lazy
    if isinstance(target, Entity) or hasattr(target, "build"):
        return lambda: target
    if callable(target):
        return target
    raise ValueError(f"Invalid relation target: {target!r}")


def belongs_to(target: EntityTarget) -> RelationBuilder:
    """Many-to-one relation."""
    return RelationBuilder("belongsTo", _lazy(target))


def has_many(target: EntityTarget) -> RelationBuilder:
    """One-to-many relation."""
    return RelationBuilder("hasMany", _lazy(target))


def has_one(target: EntityTarget) -> RelationBuilder:
    """One-to-one relation."""
    return RelationBuilder("hasOne", _lazy(target))


string = FieldBuilder("string")
text = FieldBuilder("text")
int_ = FieldBuilder("int")
float_ = FieldBuilder("float")
bool_ = FieldBuilder("boolean")
datetime_ = FieldBuilder("datetime")
json_ = FieldBuilder("json")
email = FieldBuilder(FieldDef(type="string", is_email=True))


def build_fields(
    fields: dict[str, FieldBuilder | RelationBuilder | FieldDef],
) -> dict[str, FieldDef]:
    """Build a field map, preserving declaration order."""
    result: dict[str, FieldDef] = {}
    for name, value in fields.items():
        if isinstance(value, FieldDef):
            result[name] = value
        elif isinstance(value, (FieldBuilder, RelationBuilder)):
            result[name] = value.build(name)
        else:
            raise ValueError(f"Field {name!r} is not a field builder: {value!r}")
    return result
