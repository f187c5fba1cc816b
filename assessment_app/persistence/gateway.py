"""Generic CRUD surface over the backing store, plus an in-memory implementation."""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from assessment_app.core.errors import ConflictError, NotFoundError, ValidationError

Record = dict[str, Any]


class EntityType(str, Enum):
    PLACEMENT_QUESTIONS = "placement_questions"
    PLACEMENT_SUBMISSIONS = "placement_submissions"
    ORAL_TEST_SLOTS = "oral_test_slots"
    KAHOOT_QUIZZES = "kahoot_quizzes"
    KAHOOT_PARTICIPANTS = "kahoot_participants"


FILTER_OPERATORS = ("eq", "neq", "gte", "lte", "in")


@dataclass(frozen=True, slots=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPERATORS:
            raise ValidationError(f"Unsupported filter operator: {self.op}")

    def matches(self, record: Mapping[str, Any]) -> bool:
        current = record.get(self.field)
        if self.op == "eq":
            return current == self.value
        if self.op == "neq":
            return current != self.value
        if self.op == "in":
            return current in self.value
        if current is None:
            return False
        if self.op == "gte":
            return current >= self.value
        return current <= self.value


@dataclass(frozen=True, slots=True)
class Order:
    field: str
    descending: bool = False


class PersistenceGateway(Protocol):
    """Durable store consumed by the services.

    Every call may raise ``TransientError`` (safe to retry) or
    ``GatewayPermissionError`` (not retryable).
    """

    async def create(self, entity: EntityType, record: Mapping[str, Any]) -> Record: ...

    async def get_by_id(self, entity: EntityType, record_id: str) -> Record: ...

    async def query(
        self,
        entity: EntityType,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: int | None = None,
    ) -> list[Record]: ...

    async def update(
        self,
        entity: EntityType,
        record_id: str,
        changes: Mapping[str, Any],
        match: Mapping[str, Any] | None = None,
    ) -> Record: ...

    async def delete(self, entity: EntityType, record_id: str) -> None: ...

    async def set_exclusive(self, entity: EntityType, record_id: str, field: str) -> None: ...


def sort_records(records: Iterable[Record], order_by: Sequence[Order]) -> list[Record]:
    """Stable multi-key sort; ``None`` values sort first in ascending order."""
    ordered = list(records)
    for order in reversed(order_by):
        ordered.sort(
            key=lambda record: (record.get(order.field) is not None, record.get(order.field)),
            reverse=order.descending,
        )
    return ordered


class InMemoryGateway:
    """Dict-backed gateway that keeps records in insertion order."""

    def __init__(self) -> None:
        self._tables: dict[EntityType, dict[str, Record]] = {entity: {} for entity in EntityType}

    async def create(self, entity: EntityType, record: Mapping[str, Any]) -> Record:
        table = self._tables[entity]
        stored = copy.deepcopy(dict(record))
        record_id = str(stored.get("id") or uuid4())
        if record_id in table:
            raise ConflictError(f"{entity.value} record {record_id} already exists")
        stored["id"] = record_id
        table[record_id] = stored
        return copy.deepcopy(stored)

    async def get_by_id(self, entity: EntityType, record_id: str) -> Record:
        return copy.deepcopy(self._require(entity, record_id))

    async def query(
        self,
        entity: EntityType,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: int | None = None,
    ) -> list[Record]:
        rows = [
            record
            for record in self._tables[entity].values()
            if all(condition.matches(record) for condition in filters)
        ]
        rows = sort_records(rows, order_by)
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(row) for row in rows]

    async def update(
        self,
        entity: EntityType,
        record_id: str,
        changes: Mapping[str, Any],
        match: Mapping[str, Any] | None = None,
    ) -> Record:
        stored = self._require(entity, record_id)
        if match:
            for field, expected in match.items():
                if stored.get(field) != expected:
                    raise ConflictError(
                        f"{entity.value} record {record_id} no longer has {field}={expected!r}"
                    )
        stored.update(copy.deepcopy(dict(changes)))
        stored["id"] = record_id
        return copy.deepcopy(stored)

    async def delete(self, entity: EntityType, record_id: str) -> None:
        self._require(entity, record_id)
        del self._tables[entity][record_id]

    async def set_exclusive(self, entity: EntityType, record_id: str, field: str) -> None:
        self._require(entity, record_id)
        for key, record in self._tables[entity].items():
            record[field] = key == record_id

    def _require(self, entity: EntityType, record_id: str) -> Record:
        record = self._tables[entity].get(str(record_id))
        if record is None:
            raise NotFoundError(f"{entity.value} record {record_id} not found")
        return record
