"""SQLAlchemy (asyncio) implementation of the persistence gateway."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    exc as sa_exc,
    insert,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from assessment_app.core.errors import (
    ConflictError,
    GatewayPermissionError,
    NotFoundError,
    TransientError,
)
from assessment_app.persistence.gateway import EntityType, Filter, Order, Record

logger = logging.getLogger(__name__)

INSUFFICIENT_PRIVILEGE = "42501"

metadata = MetaData()


def _table(name: str, *columns: Column) -> Table:
    # ``seq`` preserves insertion order for stable tie-breaks; it never leaves the gateway.
    return Table(
        name,
        metadata,
        Column("seq", Integer, primary_key=True, autoincrement=True),
        Column("id", String(36), nullable=False, unique=True),
        *columns,
    )


TABLES: dict[EntityType, Table] = {
    EntityType.PLACEMENT_QUESTIONS: _table(
        "placement_questions",
        Column("text", Text, nullable=False),
        Column("options", JSON, nullable=False),
        Column("correct_answer_index", Integer, nullable=False),
        Column("weight", Float, nullable=False, default=1.0),
        Column("is_active", Boolean, nullable=False, default=True),
        Column("created_at", DateTime),
    ),
    EntityType.PLACEMENT_SUBMISSIONS: _table(
        "placement_submissions",
        Column("session_id", String(32)),
        Column("name", String(255), nullable=False),
        Column("email", String(255)),
        Column("personal_wa", String(64)),
        Column("grade", String(64)),
        Column("wa", String(64)),
        Column("dob", String(32)),
        Column("parent_name", String(255)),
        Column("parent_wa", String(64)),
        Column("address", Text),
        Column("school_origin", String(255)),
        Column("score", Integer, nullable=False),
        Column("cefr_level", String(2), nullable=False),
        Column("timestamp", DateTime),
        Column("oral_test_status", String(16), nullable=False, default="none"),
        Column("oral_test_date", String(10)),
        Column("oral_test_time", String(5)),
        Column("oral_test_score", String(2)),
    ),
    EntityType.ORAL_TEST_SLOTS: _table(
        "oral_test_slots",
        Column("date", String(10), nullable=False),
        Column("time", String(5), nullable=False),
        Column("is_booked", Boolean, nullable=False, default=False),
        Column("booked_by", String(36)),
        Column("created_at", DateTime),
    ),
    EntityType.KAHOOT_QUIZZES: _table(
        "kahoot_quizzes",
        Column("title", String(255), nullable=False),
        Column("description", Text),
        Column("is_active", Boolean, nullable=False, default=False),
        Column("questions", JSON, nullable=False),
        Column("play_count", Integer, nullable=False, default=0),
        Column("created_at", DateTime),
    ),
    EntityType.KAHOOT_PARTICIPANTS: _table(
        "kahoot_participants",
        Column("quiz_id", String(36), nullable=False),
        Column("name", String(255), nullable=False),
        Column("email", String(255)),
        Column("score", Integer, nullable=False),
        Column("correct_answers", Integer, nullable=False),
        Column("total_questions", Integer, nullable=False),
        Column("time_spent", Integer, nullable=False, default=0),
        Column("completed_at", DateTime),
    ),
}


def _sqlstate(error: sa_exc.DBAPIError) -> str | None:
    original = error.orig
    return getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)


class SqlGateway:
    """Persistence gateway backed by any SQLAlchemy async driver."""

    def __init__(self, database_url: str | None = None, *, engine: AsyncEngine | None = None) -> None:
        if engine is None:
            if not database_url:
                raise ValueError("Either database_url or engine is required.")
            engine = create_async_engine(database_url, echo=False)
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def init_schema(self) -> None:
        """Create every table that does not exist yet."""
        async with self._transaction() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    async def create(self, entity: EntityType, record: Mapping[str, Any]) -> Record:
        table = TABLES[entity]
        values = self._columns_only(table, record)
        values["id"] = str(values.get("id") or uuid4())
        async with self._transaction() as conn:
            await conn.execute(insert(table).values(**values))
            return await self._fetch(conn, entity, values["id"])

    async def get_by_id(self, entity: EntityType, record_id: str) -> Record:
        async with self._transaction() as conn:
            return await self._fetch(conn, entity, record_id)

    async def query(
        self,
        entity: EntityType,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: int | None = None,
    ) -> list[Record]:
        table = TABLES[entity]
        statement = select(table)
        for condition in filters:
            statement = statement.where(self._clause(table, condition))
        for order in order_by:
            column = table.c[order.field]
            statement = statement.order_by(column.desc() if order.descending else column.asc())
        statement = statement.order_by(table.c.seq.asc())
        if limit is not None:
            statement = statement.limit(limit)
        async with self._transaction() as conn:
            result = await conn.execute(statement)
            return [self._to_record(row) for row in result]

    async def update(
        self,
        entity: EntityType,
        record_id: str,
        changes: Mapping[str, Any],
        match: Mapping[str, Any] | None = None,
    ) -> Record:
        table = TABLES[entity]
        values = self._columns_only(table, changes)
        values.pop("id", None)
        statement = update(table).where(table.c.id == record_id)
        for field, expected in (match or {}).items():
            statement = statement.where(table.c[field] == expected)
        async with self._transaction() as conn:
            if not values:
                current = await self._fetch(conn, entity, record_id)
                if any(current.get(field) != expected for field, expected in (match or {}).items()):
                    raise ConflictError(f"{entity.value} record {record_id} changed concurrently")
                return current
            result = await conn.execute(statement.values(**values))
            if result.rowcount == 0:
                # Either the row is gone or the precondition failed.
                await self._fetch(conn, entity, record_id)
                raise ConflictError(f"{entity.value} record {record_id} changed concurrently")
            return await self._fetch(conn, entity, record_id)

    async def delete(self, entity: EntityType, record_id: str) -> None:
        table = TABLES[entity]
        async with self._transaction() as conn:
            result = await conn.execute(delete(table).where(table.c.id == record_id))
            if result.rowcount == 0:
                raise NotFoundError(f"{entity.value} record {record_id} not found")

    async def set_exclusive(self, entity: EntityType, record_id: str, field: str) -> None:
        table = TABLES[entity]
        async with self._transaction() as conn:
            await self._fetch(conn, entity, record_id)
            await conn.execute(update(table).values({field: table.c.id == record_id}))

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncConnection]:
        try:
            async with self._engine.begin() as conn:
                yield conn
        except sa_exc.IntegrityError as exc:
            raise ConflictError(str(exc.orig)) from exc
        except sa_exc.DBAPIError as exc:
            if _sqlstate(exc) == INSUFFICIENT_PRIVILEGE:
                raise GatewayPermissionError(str(exc.orig)) from exc
            if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError)) or exc.connection_invalidated:
                logger.warning("Transient database failure: %s", exc.orig)
                raise TransientError(str(exc.orig)) from exc
            raise
        except sa_exc.TimeoutError as exc:
            logger.warning("Database pool timed out: %s", exc)
            raise TransientError(str(exc)) from exc

    async def _fetch(self, conn: AsyncConnection, entity: EntityType, record_id: str) -> Record:
        table = TABLES[entity]
        result = await conn.execute(select(table).where(table.c.id == str(record_id)))
        row = result.first()
        if row is None:
            raise NotFoundError(f"{entity.value} record {record_id} not found")
        return self._to_record(row)

    @staticmethod
    def _clause(table: Table, condition: Filter):
        column = table.c[condition.field]
        if condition.op == "eq":
            return column == condition.value
        if condition.op == "neq":
            return column.is_distinct_from(condition.value)
        if condition.op == "gte":
            return column >= condition.value
        if condition.op == "lte":
            return column <= condition.value
        return column.in_(list(condition.value))

    @staticmethod
    def _columns_only(table: Table, record: Mapping[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in record.items() if key in table.c and key != "seq"}

    @staticmethod
    def _to_record(row) -> Record:
        record = dict(row._mapping)
        record.pop("seq", None)
        return record
