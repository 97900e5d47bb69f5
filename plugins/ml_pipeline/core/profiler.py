"""Column type inference and per-column statistics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from .table import Table, is_missing, to_number

ColumnKind = Literal["numeric", "categorical"]

NUMERIC_THRESHOLD = 0.8
SAMPLE_SIZE = 5


@dataclass(frozen=True, slots=True)
class ColumnProfile:
    name: str
    kind: ColumnKind
    missing_count: int
    missing_percentage: float
    unique_count: int
    sample_values: tuple[Any, ...]

    @property
    def is_numeric(self) -> bool:
        return self.kind == "numeric"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind,
            "missingCount": self.missing_count,
            "missingPercentage": self.missing_percentage,
            "uniqueValues": self.unique_count,
            "sampleValues": list(self.sample_values),
        }


def _unique_in_order(values: list[Any]) -> list[Any]:
    seen: set[tuple[type, Any]] = set()
    unique: list[Any] = []
    for value in values:
        key = (type(value), value)
        if key in seen:
            continue
        seen.add(key)
        unique.append(value)
    return unique


def profile_column(table: Table, name: str) -> ColumnProfile:
    values = table.column(name)
    present = [value for value in values if not is_missing(value)]
    numeric_count = sum(1 for value in present if to_number(value) is not None)
    is_numeric = bool(present) and numeric_count >= NUMERIC_THRESHOLD * len(present)
    missing = len(values) - len(present)
    unique = _unique_in_order(present)
    return ColumnProfile(
        name=name,
        kind="numeric" if is_numeric else "categorical",
        missing_count=missing,
        missing_percentage=round(missing / len(values) * 100, 2) if values else 0.0,
        unique_count=len(unique),
        sample_values=tuple(unique[:SAMPLE_SIZE]),
    )


def profile_table(table: Table) -> list[ColumnProfile]:
    """Profile every column; an empty table yields an empty list."""

    if table.is_empty:
        return []
    return [profile_column(table, name) for name in table.columns]


__all__ = [
    "ColumnKind",
    "ColumnProfile",
    "NUMERIC_THRESHOLD",
    "profile_column",
    "profile_table",
]
