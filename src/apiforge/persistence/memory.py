"""In-process driver.

Keeps every table as a dict of id -> record. Intended for tests, demos and
prototyping; data does not survive the process.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from apiforge.entities.types import Entity
from apiforge.errors import DriverError, DriverErrorCode
from apiforge.persistence.driver import (
    ID_COLUMN,
    Driver,
    QueryOptions,
    apply_defaults,
    entity_columns,
    include_plan,
)

T = TypeVar("T")


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "equals":
        return actual == expected
    if op == "not":
        return actual != expected
    if op == "in":
        return actual in (expected or [])
    if op == "notIn":
        return actual not in (expected or [])

    if actual is None or expected is None:
        return False
    try:
        if op == "lt":
            return actual < expected
        if op == "lte":
            return actual <= expected
        if op == "gt":
            return actual > expected
        if op == "gte":
            return actual >= expected
    except TypeError:
        return False

    if not isinstance(actual, str):
        return False
    if op == "contains":
        return str(expected) in actual
    if op == "startsWith":
        return actual.startswith(str(expected))
    if op == "endsWith":
        return actual.endswith(str(expected))
    raise ValueError(f"Unsupported where operator: {op}")


def matches(record: dict[str, Any], where: dict[str, Any] | None) -> bool:
    """True if a record satisfies a `where` map."""
    for key, condition in (where or {}).items():
        actual = record.get(key)
        if isinstance(condition, dict):
            if not all(_compare(op, actual, expected) for op, expected in condition.items()):
                return False
        elif actual != condition:
            return False
    return True


def _sort(records: list[dict[str, Any]], order_by: dict[str, str]) -> list[dict[str, Any]]:
    # Stable sorts applied from the least significant key; None sorts first.
    for key, direction in reversed(list(order_by.items())):
        records.sort(
            key=lambda r: (r.get(key) is not None, r.get(key)),
            reverse=direction == "desc",
        )
    return records


class MemoryDriver:
    """Dict-backed driver with unique-constraint enforcement.

    Args:
        enforce_foreign_keys: Reject belongsTo values that reference a
            missing record of a registered entity
    """

    def __init__(self, enforce_foreign_keys: bool = False):
        self.enforce_foreign_keys = enforce_foreign_keys
        self._entities: dict[str, Entity] = {}
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._tx_lock = asyncio.Lock()

    def initialize_entity(self, entity: Entity) -> None:
        self._entities[entity.name] = entity
        self._tables.setdefault(entity.name, {})

    def _table(self, entity: str) -> dict[str, dict[str, Any]]:
        if entity not in self._tables:
            raise ValueError(f"Unknown entity: {entity}")
        return self._tables[entity]

    # -------------------------------------------------------------------------
    # Constraints
    # -------------------------------------------------------------------------

    def _check_unique(self, entity: str, row: dict[str, Any], own_id: str | None = None) -> None:
        columns = entity_columns(self._entities[entity])
        unique = [name for name, definition in columns.items() if definition.unique]
        for existing in self._table(entity).values():
            if existing[ID_COLUMN] == own_id:
                continue
            if own_id is None and existing[ID_COLUMN] == row.get(ID_COLUMN):
                raise DriverError(
                    DriverErrorCode.UNIQUE_VIOLATION,
                    f"Unique constraint failed on {entity}.{ID_COLUMN}",
                )
            for name in unique:
                if row.get(name) is not None and existing.get(name) == row.get(name):
                    raise DriverError(
                        DriverErrorCode.UNIQUE_VIOLATION,
                        f"Unique constraint failed on {entity}.{name}",
                    )

    def _check_foreign_keys(self, entity: str, row: dict[str, Any]) -> None:
        if not self.enforce_foreign_keys:
            return
        for definition in self._entities[entity].config.fields.values():
            relation = definition.relation
            if relation is None or relation.type != "belongsTo":
                continue
            value = row.get(relation.foreign_key)
            target = relation.entity().name
            if value is None or target not in self._tables:
                continue
            if not any(
                r.get(relation.references) == value for r in self._tables[target].values()
            ):
                raise DriverError(
                    DriverErrorCode.FOREIGN_KEY_VIOLATION,
                    f"Foreign key constraint failed on {entity}.{relation.foreign_key}",
                )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _include(self, entity: str, record: dict[str, Any], include: dict[str, bool]) -> None:
        for name, wanted in include.items():
            if not wanted:
                continue
            plan = include_plan(self._entities[entity], name, self._entities)
            if plan is None or plan.target not in self._tables:
                continue
            value = record.get(plan.source_column)
            related = [
                dict(r)
                for r in self._tables[plan.target].values()
                if value is not None and r.get(plan.target_column) == value
            ]
            record[name] = related if plan.many else (related[0] if related else None)

    async def find_one(
        self,
        entity: str,
        where: dict[str, Any],
        include: dict[str, bool] | None = None,
    ) -> dict[str, Any] | None:
        for record in self._table(entity).values():
            if matches(record, where):
                result = dict(record)
                if include:
                    self._include(entity, result, include)
                return result
        return None

    async def find_many(
        self, entity: str, options: QueryOptions | None = None
    ) -> list[dict[str, Any]]:
        options = options or QueryOptions()
        records = [dict(r) for r in self._table(entity).values() if matches(r, options.where)]
        records = _sort(records, options.order_by)
        end = None if options.take is None else options.skip + options.take
        records = records[options.skip:end]
        if options.include:
            for record in records:
                self._include(entity, record, options.include)
        return records

    async def count(self, entity: str, where: dict[str, Any] | None = None) -> int:
        return sum(1 for r in self._table(entity).values() if matches(r, where))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        table = self._table(entity)
        row = apply_defaults(self._entities[entity], data)
        row[ID_COLUMN] = str(row.get(ID_COLUMN) or uuid.uuid4().hex)
        for name in entity_columns(self._entities[entity]):
            row.setdefault(name, None)

        self._check_unique(entity, row)
        self._check_foreign_keys(entity, row)
        table[row[ID_COLUMN]] = row
        return dict(row)

    async def update(
        self, entity: str, where: dict[str, Any], data: dict[str, Any]
    ) -> dict[str, Any]:
        existing = await self.find_one(entity, where)
        if existing is None:
            raise DriverError(DriverErrorCode.RECORD_NOT_FOUND, f"No {entity} record to update")

        columns = entity_columns(self._entities[entity])
        changes = {key: value for key, value in data.items() if key in columns}
        row = {**existing, **changes}
        self._check_unique(entity, row, own_id=existing[ID_COLUMN])
        self._check_foreign_keys(entity, row)
        self._table(entity)[existing[ID_COLUMN]] = row
        return dict(row)

    async def delete(self, entity: str, where: dict[str, Any]) -> None:
        existing = await self.find_one(entity, where)
        if existing is None:
            raise DriverError(DriverErrorCode.RECORD_NOT_FOUND, f"No {entity} record to delete")
        del self._table(entity)[existing[ID_COLUMN]]

    async def transaction(self, callback: Callable[[Driver], Awaitable[T]]) -> T:
        """Run `callback(self)`; restore the previous state if it raises.

        The snapshot covers every table, so writes made by other requests
        during the transaction are rolled back as well.
        """
        async with self._tx_lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                return await callback(self)
            except BaseException:
                self._tables = snapshot
                raise

    def reset(self) -> None:
        """Drop all records, keeping registered entities. Primarily for testing."""
        self._tables = {name: {} for name in self._entities}
