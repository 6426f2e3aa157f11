"""reward_persist.columnar

Column-oriented row buffers ("struct of arrays") for bulk inserts.

A ColumnarBatch holds one list per destination column. Every add() pushes
exactly one value onto every column, so all columns always have the same
length and row i is the i-th element of each list. Writers rely on that
positional correspondence when they pair generated ids with source rows.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: tuple[str, ...]

    @property
    def width(self) -> int:
        return len(self.columns)


class ColumnarBatch:
    """Growable per-column buffer for one destination table."""

    def __init__(self, table: TableSpec) -> None:
        self.table = table
        self._columns: dict[str, list[Any]] = {name: [] for name in table.columns}
        self._length = 0

    def add(self, **values: Any) -> None:
        """Append one logical row. values must name exactly the table's columns."""
        if values.keys() != self._columns.keys():
            missing = sorted(self._columns.keys() - values.keys())
            extra = sorted(values.keys() - self._columns.keys())
            raise ValueError(
                f"{self.table.name}: row does not match columns "
                f"(missing={missing}, unexpected={extra})"
            )
        for name, column in self._columns.items():
            column.append(values[name])
        self._length += 1

    def column(self, name: str) -> list[Any]:
        return self._columns[name]

    def rows(self, start: int = 0, end: int | None = None) -> Iterator[tuple[Any, ...]]:
        """Yield row tuples, in column order, for positions [start, end)."""
        end = self._length if end is None else min(end, self._length)
        sliced = [column[start:end] for column in self._columns.values()]
        return zip(*sliced)

    def __len__(self) -> int:
        return self._length

    def __bool__(self) -> bool:
        return self._length > 0

    def __repr__(self) -> str:
        return f"ColumnarBatch({self.table.name!r}, rows={self._length})"
