"""SQL driver on SQLAlchemy Core.

Tables are derived from entities when they are initialized. Dialect-neutral:
anything SQLAlchemy can connect to works, SQLite and PostgreSQL are tested.

Column mapping:
    string -> VARCHAR, text -> TEXT, int -> INTEGER, float -> FLOAT,
    boolean -> BOOLEAN, datetime -> VARCHAR (ISO-8601), json -> JSON
Every table has a string primary key "id" (uuid4 hex when not supplied).
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    delete,
    false,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

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

logger = logging.getLogger(__name__)

T = TypeVar("T")

COLUMN_TYPES = {
    "string": String,
    "text": Text,
    "int": Integer,
    "float": Float,
    "boolean": Boolean,
    "datetime": String,
    "json": JSON,
}

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def create_sql_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url in _IN_MEMORY_URLS:
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url)


def _driver_error(error: IntegrityError) -> DriverError:
    message = str(error.orig)
    if "foreign key" in message.lower():
        return DriverError(DriverErrorCode.FOREIGN_KEY_VIOLATION, message)
    return DriverError(DriverErrorCode.UNIQUE_VIOLATION, message)


def _condition(column: Any, op: str, value: Any) -> Any:
    if op == "equals":
        return column == value
    if op == "not":
        return column != value
    if op == "in":
        return column.in_(list(value or []))
    if op == "notIn":
        return column.not_in(list(value or []))
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "contains":
        return column.contains(str(value), autoescape=True)
    if op == "startsWith":
        return column.startswith(str(value), autoescape=True)
    if op == "endsWith":
        return column.endswith(str(value), autoescape=True)
    raise ValueError(f"Unsupported where operator: {op}")


class SQLDriver:
    """Driver backed by a SQLAlchemy engine.

    Args:
        url: SQLAlchemy database URL (ignored when `engine` is given)
        engine: An existing engine to use
        create_tables: Create missing tables in initialize_entity()
    """

    def __init__(
        self,
        url: str | None = None,
        engine: Engine | None = None,
        create_tables: bool = True,
    ):
        if engine is None:
            if url is None:
                raise ValueError("SQLDriver needs a database URL or an engine")
            engine = create_sql_engine(url)
        self._engine = engine
        self._create_tables = create_tables
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}
        self._entities: dict[str, Entity] = {}
        self._connection: Connection | None = None

    @property
    def engine(self) -> Engine:
        return self._engine

    def initialize_entity(self, entity: Entity) -> None:
        """Declare (and optionally create) the table for an entity."""
        existing = self._tables.get(entity.name)
        if existing is not None:
            self._metadata.remove(existing)

        columns = [Column(ID_COLUMN, String, primary_key=True)]
        for name, definition in entity_columns(entity).items():
            column_type = COLUMN_TYPES.get(definition.type, String)
            columns.append(Column(name, column_type, unique=definition.unique, nullable=True))

        table = Table(entity.name, self._metadata, *columns)
        self._tables[entity.name] = table
        self._entities[entity.name] = entity

        if self._create_tables:
            table.create(self._connection or self._engine, checkfirst=True)
            logger.debug("Ensured table %s", entity.name)

    def dispose(self) -> None:
        self._engine.dispose()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _table(self, entity: str) -> Table:
        table = self._tables.get(entity)
        if table is None:
            raise ValueError(f"Unknown entity: {entity}")
        return table

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.begin() as conn:
            yield conn

    def _where(self, table: Table, where: dict[str, Any] | None) -> Any:
        clauses = []
        for key, condition in (where or {}).items():
            if key not in table.c:
                clauses.append(false())
                continue
            column = table.c[key]
            if isinstance(condition, dict):
                clauses.extend(_condition(column, op, value) for op, value in condition.items())
            else:
                clauses.append(column == condition)
        return and_(*clauses) if clauses else None

    def _select(self, table: Table, where: dict[str, Any] | None) -> Any:
        stmt = select(table)
        clause = self._where(table, where)
        if clause is not None:
            stmt = stmt.where(clause)
        return stmt

    def _include(
        self,
        conn: Connection,
        entity: str,
        record: dict[str, Any],
        include: dict[str, bool],
    ) -> None:
        for name, wanted in include.items():
            if not wanted:
                continue
            plan = include_plan(self._entities[entity], name, self._entities)
            if plan is None or plan.target not in self._tables:
                continue
            value = record.get(plan.source_column)
            if value is None:
                record[name] = [] if plan.many else None
                continue
            target = self._tables[plan.target]
            rows = conn.execute(
                select(target).where(target.c[plan.target_column] == value)
            ).mappings().all()
            related = [dict(row) for row in rows]
            record[name] = related if plan.many else (related[0] if related else None)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_one(
        self,
        entity: str,
        where: dict[str, Any],
        include: dict[str, bool] | None = None,
    ) -> dict[str, Any] | None:
        table = self._table(entity)
        with self._connect() as conn:
            row = conn.execute(self._select(table, where).limit(1)).mappings().first()
            if row is None:
                return None
            record = dict(row)
            if include:
                self._include(conn, entity, record, include)
            return record

    async def find_many(
        self, entity: str, options: QueryOptions | None = None
    ) -> list[dict[str, Any]]:
        options = options or QueryOptions()
        table = self._table(entity)
        stmt = self._select(table, options.where)
        for key, direction in options.order_by.items():
            if key in table.c:
                column = table.c[key]
                stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())
        if options.skip:
            stmt = stmt.offset(options.skip)
        if options.take is not None:
            stmt = stmt.limit(options.take)

        with self._connect() as conn:
            records = [dict(row) for row in conn.execute(stmt).mappings().all()]
            if options.include:
                for record in records:
                    self._include(conn, entity, record, options.include)
            return records

    async def count(self, entity: str, where: dict[str, Any] | None = None) -> int:
        table = self._table(entity)
        stmt = select(func.count()).select_from(table)
        clause = self._where(table, where)
        if clause is not None:
            stmt = stmt.where(clause)
        with self._connect() as conn:
            return conn.execute(stmt).scalar_one()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        table = self._table(entity)
        row = apply_defaults(self._entities[entity], data)
        row[ID_COLUMN] = str(row.get(ID_COLUMN) or uuid.uuid4().hex)
        try:
            with self._connect() as conn:
                conn.execute(insert(table).values(**row))
                created = conn.execute(
                    select(table).where(table.c[ID_COLUMN] == row[ID_COLUMN])
                ).mappings().one()
                return dict(created)
        except IntegrityError as e:
            raise _driver_error(e) from e

    async def update(
        self, entity: str, where: dict[str, Any], data: dict[str, Any]
    ) -> dict[str, Any]:
        table = self._table(entity)
        changes = {key: value for key, value in data.items() if key in table.c and key != ID_COLUMN}
        try:
            with self._connect() as conn:
                existing = conn.execute(self._select(table, where).limit(1)).mappings().first()
                if existing is None:
                    raise DriverError(
                        DriverErrorCode.RECORD_NOT_FOUND, f"No {entity} record to update"
                    )
                record_id = existing[ID_COLUMN]
                if changes:
                    conn.execute(
                        update(table).where(table.c[ID_COLUMN] == record_id).values(**changes)
                    )
                updated = conn.execute(
                    select(table).where(table.c[ID_COLUMN] == record_id)
                ).mappings().one()
                return dict(updated)
        except IntegrityError as e:
            raise _driver_error(e) from e

    async def delete(self, entity: str, where: dict[str, Any]) -> None:
        table = self._table(entity)
        try:
            with self._connect() as conn:
                existing = conn.execute(self._select(table, where).limit(1)).mappings().first()
                if existing is None:
                    raise DriverError(
                        DriverErrorCode.RECORD_NOT_FOUND, f"No {entity} record to delete"
                    )
                conn.execute(delete(table).where(table.c[ID_COLUMN] == existing[ID_COLUMN]))
        except IntegrityError as e:
            raise _driver_error(e) from e

    async def transaction(self, callback: Callable[[Driver], Awaitable[T]]) -> T:
        """Run `callback` with a driver bound to one database transaction.

        The transaction commits when the callback returns and rolls back
        when it raises. Nested calls reuse the outer transaction.
        """
        if self._connection is not None:
            return await callback(self)
        with self._engine.begin() as conn:
            scoped = copy.copy(self)
            scoped._connection = conn
            return await callback(scoped)
