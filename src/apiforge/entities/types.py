"""Core data model: fields, relations, entities.

Entities are value objects. They are assembled once (through
EntityBuilder or the plugin resolver) and treated as read-only afterwards.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from apiforge.auth.rules import RuleContext


FIELD_TYPES = ("string", "text", "int", "float", "boolean", "datetime", "json")

RELATION_TYPES = ("belongsTo", "hasMany", "hasOne")

ON_DELETE_ACTIONS = ("cascade", "setNull", "restrict")


class Operation(str, Enum):
    """CRUD operations an entity exposes."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"


class _NoDefault:
    """Sentinel type for "no default value" (None is a valid default)."""

    _instance: _NoDefault | None = None

    def __new__(cls) -> _NoDefault:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_DEFAULT"

    def __bool__(self) -> bool:
        return False


NO_DEFAULT: Any = _NoDefault()


@dataclass(frozen=True)
class RelationDef:
    """Relation from one entity to another.

    Attributes:
        type: "belongsTo", "hasMany" or "hasOne"
        entity: Zero-argument callable returning the target Entity (lazy,
            so entities can reference each other in either order)
        foreign_key: Foreign key column name (e.g. "authorId")
        references: Target field the key points at
        on_delete: Optional "cascade" | "setNull" | "restrict"
    """

    type: str
    entity: Callable[[], Entity]
    foreign_key: str
    references: str = "id"
    on_delete: str | None = None


@dataclass(frozen=True)
class FieldDef:
    """A single field of an entity."""

    type: str
    optional: bool = False
    unique: bool = False
    default: Any = NO_DEFAULT
    min: float | None = None
    max: float | None = None
    is_email: bool = False
    relation: RelationDef | None = None
    locked: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    @property
    def is_collection(self) -> bool:
        """True for hasMany relations, which never map to a scalar column."""
        return self.relation is not None and self.relation.type == "hasMany"


RuleFn = Callable[["RuleContext"], Union[bool, Awaitable[bool]]]
RuleDef = Union[str, RuleFn]


@dataclass
class EntityConfig:
    fields: dict[str, FieldDef] = field(default_factory=dict)
    rules: dict[str, list[RuleDef]] = field(default_factory=dict)
    owner_field: str | None = None
    timestamps: bool = True


@dataclass(frozen=True)
class EntityPluginInfo:
    """Routing facts attached to entities contributed by a plugin."""

    id: str
    base_path: str | None = None
    route_path: str | None = None
    internal: bool = False


@dataclass
class Entity:
    """A named resource compiled into CRUD routes."""

    name: str
    config: EntityConfig = field(default_factory=EntityConfig)
    plugin: EntityPluginInfo | None = None

    @property
    def fields(self) -> dict[str, FieldDef]:
        return self.config.fields

    def with_fields(self, extra: dict[str, FieldDef]) -> Entity:
        """Return a copy with additional fields (later keys win)."""
        config = EntityConfig(
            fields={**self.config.fields, **extra},
            rules={op: list(rules) for op, rules in self.config.rules.items()},
            owner_field=self.config.owner_field,
            timestamps=self.config.timestamps,
        )
        return Entity(name=self.name, config=config, plugin=self.plugin)


def placeholder_entity(name: str) -> Entity:
    """A field-less entity used only as a relation target."""
    return Entity(name=name, config=EntityConfig())


@dataclass(frozen=True)
class PlaceholderRef:
    """Lazy relation target resolving to placeholder_entity(name).

    Compares by name, so entities resolved twice from the same schema are
    equal.
    """

    name: str

    def __call__(self) -> Entity:
        return placeholder_entity(self.name)


def resolve_entity(entity_or_builder: Any) -> Entity:
    """Return a concrete Entity from an Entity or an unbuilt builder."""
    if entity_or_builder is None:
        raise ValueError(
            "Cannot resolve undefined entity. "
            "Make sure all entity references are properly defined."
        )
    if isinstance(entity_or_builder, Entity):
        return entity_or_builder
    build = getattr(entity_or_builder, "build", None)
    if callable(build):
        return build()
    raise ValueError(f"Cannot resolve {entity_or_builder!r} to an entity")
