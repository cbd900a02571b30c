"""
Store client contract shared by the REST implementation and test doubles.

Rows are plain dicts. Filters are simple column predicates combined with AND.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in", "is")


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, row: dict[str, Any]) -> bool:
        current = row.get(self.column)
        if self.op == "eq":
            return current == self.value
        if self.op == "neq":
            return current != self.value
        if self.op == "in":
            return current in self.value
        if self.op == "is":
            return current is self.value
        if current is None:
            return False
        if self.op == "gt":
            return current > self.value
        if self.op == "gte":
            return current >= self.value
        if self.op == "lt":
            return current < self.value
        return current <= self.value


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


class StoreClient(ABC):
    """Read/insert/update/delete against named record collections."""

    @abstractmethod
    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return matching rows. Raises StoreFailure when the read fails."""

    @abstractmethod
    async def count(self, table: str, *, filters: Sequence[Filter] = ()) -> int:
        """Return the number of matching rows."""

    @abstractmethod
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored. Raises StoreConflict on unique violations."""

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        """Update matching rows and return them."""

    @abstractmethod
    async def delete(self, table: str, *, filters: Sequence[Filter]) -> list[dict[str, Any]]:
        """Delete matching rows and return the deleted rows."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
