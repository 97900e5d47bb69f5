"""Row-oriented tables, cell parsing and feature extraction."""

from __future__ import annotations

import math
import zipfile
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import PurePath
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from common.logging import get_logger

from .errors import ConfigurationError, DataError

logger = get_logger("ml_pipeline.table")

MISSING = None
SPREADSHEET_SUFFIXES = (".xlsx", ".xls")


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def to_number(value: Any) -> float | None:
    """Parse ``value`` as a finite real number, or return ``None``.

    Booleans are deliberately not numbers here; the profiler treats a column
    of ``True``/``False`` as categorical.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_feature(value: Any) -> float:
    """Coerce a cell for a feature matrix or label vector.

    Non-numeric and missing cells become ``0.0``. This is lossy on purpose
    and callers surface the number of coerced cells.
    """

    if isinstance(value, bool):
        return 1.0 if value else 0.0
    number = to_number(value)
    return 0.0 if number is None else number


def normalise_cell(value: Any) -> Any:
    if isinstance(value, np.generic):
        value = value.item()
    if is_missing(value):
        return MISSING
    return value


@dataclass(frozen=True, slots=True)
class Table:
    """An ordered sequence of rows sharing one ordered column set.

    Stages never mutate a table they receive; every transform builds new row
    dictionaries and a new :class:`Table`.
    """

    columns: tuple[str, ...]
    rows: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_records(
        cls, records: Iterable[Mapping[str, Any]], columns: Sequence[str] | None = None
    ) -> "Table":
        materialised = [dict(record) for record in records]
        if columns is None:
            ordered: dict[str, None] = {}
            for record in materialised:
                for name in record:
                    ordered.setdefault(str(name), None)
            columns = list(ordered)
        names = tuple(str(name) for name in columns)
        rows = tuple(
            {name: normalise_cell(record.get(name, MISSING)) for name in names}
            for record in materialised
        )
        return cls(columns=names, rows=rows)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def column(self, name: str) -> list[Any]:
        self.require_columns([name])
        return [row[name] for row in self.rows]

    def head(self, count: int = 5) -> list[dict[str, Any]]:
        return [dict(row) for row in self.rows[: max(count, 0)]]

    def to_records(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.rows]

    def take(self, indices: Sequence[int]) -> "Table":
        return Table(columns=self.columns, rows=tuple(dict(self.rows[index]) for index in indices))

    def missing_columns(self, names: Iterable[str]) -> list[str]:
        present = set(self.columns)
        return [name for name in names if name not in present]

    def require_columns(self, names: Iterable[str]) -> None:
        missing = self.missing_columns(names)
        if missing:
            raise ConfigurationError(
                f"Columns not found: {', '.join(missing)}",
                code="MISSING_COLUMNS",
                details={"columns": missing},
            )


@dataclass(frozen=True, slots=True)
class FeatureSet:
    """Numeric matrix ``X`` and label vector ``y`` extracted from a table."""

    X: list[list[float]]
    y: list[float]
    feature_names: tuple[str, ...]
    target: str
    coerced_cells: dict[str, int] = field(default_factory=dict)

    @property
    def n_samples(self) -> int:
        return len(self.y)


def extract_features(
    table: Table, feature_columns: Sequence[str], target_column: str, *, partition: str = "table"
) -> FeatureSet:
    """Build ``X``/``y`` for ``feature_columns`` and ``target_column``.

    Missing or non-numeric cells coerce to ``0.0`` and are counted per column
    in :attr:`FeatureSet.coerced_cells`.
    """

    if table.is_empty:
        raise DataError(f"The {partition} partition has no rows", code="EMPTY_PARTITION", details={"partition": partition})
    absent = table.missing_columns([*feature_columns, target_column])
    if absent:
        raise DataError(
            f"Columns missing from the {partition} partition: {', '.join(absent)}",
            code="MISSING_COLUMNS",
            details={"partition": partition, "columns": absent},
        )

    coerced: dict[str, int] = {}

    def _coerce(value: Any, column: str) -> float:
        if isinstance(value, bool) or to_number(value) is not None:
            return coerce_feature(value)
        coerced[column] = coerced.get(column, 0) + 1
        return 0.0

    X = [[_coerce(row[column], column) for column in feature_columns] for row in table.rows]
    y = [_coerce(row[target_column], target_column) for row in table.rows]
    if coerced:
        logger.warning(
            "coerced %d non-numeric or missing cells to 0 in %s partition: %s",
            sum(coerced.values()),
            partition,
            coerced,
        )
    return FeatureSet(
        X=X,
        y=y,
        feature_names=tuple(feature_columns),
        target=target_column,
        coerced_cells=coerced,
    )


def load_csv_bytes(data: bytes) -> Table:
    try:
        frame = pd.read_csv(BytesIO(data))
    except pd.errors.EmptyDataError as exc:
        raise DataError("CSV file is empty", code="EMPTY_TABLE") from exc
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise DataError("Invalid CSV data", code="INVALID_CSV") from exc
    if frame.empty:
        raise DataError("CSV file must contain at least one row", code="EMPTY_TABLE")
    return table_from_frame(frame)


def load_excel_bytes(data: bytes) -> Table:
    """Read the first sheet of an ``.xlsx`` or ``.xls`` workbook."""

    try:
        frame = pd.read_excel(BytesIO(data), sheet_name=0)
    except (ValueError, zipfile.BadZipFile) as exc:
        raise DataError("Invalid spreadsheet data", code="INVALID_SPREADSHEET") from exc
    if frame.empty:
        raise DataError("Spreadsheet must contain at least one row", code="EMPTY_TABLE")
    return table_from_frame(frame)


def load_table_bytes(data: bytes, filename: str | None = None) -> Table:
    """Dispatch on the file extension; a missing name is read as CSV."""

    suffix = PurePath(filename or "").suffix.lower()
    if suffix in SPREADSHEET_SUFFIXES:
        return load_excel_bytes(data)
    if suffix in ("", ".csv"):
        return load_csv_bytes(data)
    raise DataError(
        f"Unsupported file type {suffix!r}; expected one of .csv, .xlsx, .xls",
        code="UNSUPPORTED_FILE_TYPE",
        details={"filename": filename},
    )



def table_from_frame(frame: pd.DataFrame) -> Table:
    columns = [str(column) for column in frame.columns]
    if len(set(columns)) != len(columns):
        raise DataError("Column names must be unique", code="DUPLICATE_COLUMNS")
    records = frame.astype(object).where(frame.notna(), None).to_dict(orient="records")
    return Table.from_records(
        ({str(key): value for key, value in record.items()} for record in records),
        columns=columns,
    )


__all__ = [
    "MISSING",
    "SPREADSHEET_SUFFIXES",
    "FeatureSet",
    "Table",
    "coerce_feature",
    "extract_features",
    "is_missing",
    "load_csv_bytes",
    "load_excel_bytes",
    "load_table_bytes",
    "normalise_cell",
    "table_from_frame",
    "to_number",
]
