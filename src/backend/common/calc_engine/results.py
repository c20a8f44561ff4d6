from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Sequence, Tuple

from .models import CalculationRunReport, Column, FailureReason, Result


class Results:
    """Immutable row-major grid of results, one per (target, column) cell."""

    def __init__(self, targets: Sequence[Any], columns: Sequence[Column], items: Sequence[Result]):
        if len(items) != len(targets) * len(columns):
            raise ValueError(
                f"Expected {len(targets) * len(columns)} results for a {len(targets)}x{len(columns)} grid "
                f"but got {len(items)}"
            )
        self._targets = tuple(targets)
        self._columns = tuple(columns)
        self._items = tuple(items)

    @classmethod
    def of(cls, targets: Sequence[Any], columns: Sequence[Column], items: Sequence[Result]) -> "Results":
        return cls(targets, columns, items)

    @property
    def targets(self) -> Tuple[Any, ...]:
        return self._targets

    @property
    def columns(self) -> Tuple[Column, ...]:
        return self._columns

    @property
    def items(self) -> Tuple[Result, ...]:
        return self._items

    @property
    def row_count(self) -> int:
        return len(self._targets)

    @property
    def column_count(self) -> int:
        return len(self._columns)

    def get(self, row_index: int, column_index: int) -> Result:
        if not 0 <= row_index < self.row_count:
            raise IndexError(f"Row index {row_index} out of range for {self.row_count} rows")
        if not 0 <= column_index < self.column_count:
            raise IndexError(f"Column index {column_index} out of range for {self.column_count} columns")
        return self._items[row_index * self.column_count + column_index]

    def row(self, row_index: int) -> Tuple[Result, ...]:
        return tuple(self.get(row_index, c) for c in range(self.column_count))

    def column(self, column_index: int) -> Tuple[Result, ...]:
        return tuple(self.get(r, column_index) for r in range(self.row_count))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Results):
            return NotImplemented
        return (
            self._targets == other._targets
            and self._columns == other._columns
            and self._items == other._items
        )

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return f"Results[grid={self.row_count}x{self.column_count}]"

    __repr__ = __str__


def count_outcomes(items: Iterable[Result]) -> Tuple[int, Dict[FailureReason, int]]:
    successes = 0
    failures: Dict[FailureReason, int] = {}
    for item in items:
        if item.failure is None:
            successes += 1
        else:
            failures[item.failure.reason] = failures.get(item.failure.reason, 0) + 1
    return successes, failures


def build_run_report(results: Results) -> CalculationRunReport:
    successes, failures = count_outcomes(results.items)
    return CalculationRunReport(
        run_id=str(uuid.uuid4()),
        generated_at=datetime.now(timezone.utc),
        row_count=results.row_count,
        column_count=results.column_count,
        success_count=successes,
        failures=failures,
    )
