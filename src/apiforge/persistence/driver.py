"""Driver Protocol: the persistence contract the pipeline consumes.

Entities are addressed by name. `where` is a flat map from column name to
either a literal (equality) or an operator object:

    {"age": {"gte": 18}, "email": {"endsWith": "@example.com"}}

Supported operators: equals, not, in, notIn, lt, lte, gt, gte, contains,
startsWith, endsWith.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar, runtime_checkable

from apiforge.entities.types import Entity, FieldDef

WHERE_OPERATORS = (
    "equals",
    "not",
    "in",
    "notIn",
    "lt",
    "lte",
    "gt",
    "gte",
    "contains",
    "startsWith",
    "endsWith",
)

ID_COLUMN = "id"

T = TypeVar("T")


@dataclass
class QueryOptions:
    """Options accepted by find_many()."""

    where: dict[str, Any] = field(default_factory=dict)
    order_by: dict[str, str] = field(default_factory=dict)
    take: int | None = None
    skip: int = 0
    include: dict[str, bool] = field(default_factory=dict)


@runtime_checkable
class Driver(Protocol):
    """Interface all persistence drivers must implement.

    Write failures are reported as DriverError (unique violation, missing
    record on update, foreign key violation).
    """

    def initialize_entity(self, entity: Entity) -> None: ...

    async def find_one(
        self,
        entity: str,
        where: dict[str, Any],
        include: dict[str, bool] | None = None,
    ) -> dict[str, Any] | None: ...

    async def find_many(
        self, entity: str, options: QueryOptions | None = None
    ) -> list[dict[str, Any]]: ...

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update(
        self, entity: str, where: dict[str, Any], data: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def delete(self, entity: str, where: dict[str, Any]) -> None: ...

    async def count(self, entity: str, where: dict[str, Any] | None = None) -> int: ...

    async def transaction(self, callback: Callable[[Driver], Awaitable[T]]) -> T: ...


# =============================================================================
# Helpers shared by the bundled drivers
# =============================================================================


def entity_columns(entity: Entity) -> dict[str, FieldDef]:
    """Storage columns of an entity, keyed by column name.

    Scalar fields map to themselves; belongsTo/hasOne relations map to their
    foreign key column; hasMany relations have no column.
    """
    columns: dict[str, FieldDef] = {}
    for name, definition in entity.config.fields.items():
        if definition.is_collection:
            continue
        if definition.relation is not None:
            columns[definition.relation.foreign_key] = FieldDef(
                type=definition.type,
                optional=definition.optional,
                unique=definition.unique,
            )
        else:
            columns[name] = definition
    columns.pop(ID_COLUMN, None)
    return columns


def apply_defaults(entity: Entity, data: dict[str, Any]) -> dict[str, Any]:
    """Return `data` restricted to storage columns, with field defaults filled in."""
    columns = entity_columns(entity)
    row = {key: value for key, value in data.items() if key in columns or key == ID_COLUMN}
    for name, definition in columns.items():
        if name not in row and definition.has_default:
            row[name] = definition.default
    return row


@dataclass(frozen=True)
class IncludePlan:
    """How to load one included relation for a record."""

    target: str
    target_column: str
    source_column: str
    many: bool


def include_plan(
    entity: Entity, relation_name: str, entities: dict[str, Entity]
) -> IncludePlan | None:
    """Work out the lookup for `include=relation_name`, or None if not a relation.

    belongsTo/hasOne read the foreign key on this entity. hasMany looks for
    the belongsTo relation on the target entity that points back here.
    """
    definition = entity.config.fields.get(relation_name)
    if definition is None or definition.relation is None:
        return None

    relation = definition.relation
    target = relation.entity().name
    if relation.type != "hasMany":
        return IncludePlan(
            target=target,
            target_column=relation.references,
            source_column=relation.foreign_key,
            many=False,
        )

    target_entity = entities.get(target)
    if target_entity is None:
        return None
    for candidate in target_entity.config.fields.values():
        back = candidate.relation
        if back is not None and back.type == "belongsTo" and back.entity().name == entity.name:
            return IncludePlan(
                target=target,
                target_column=back.foreign_key,
                source_column=back.references,
                many=True,
            )
    return None
