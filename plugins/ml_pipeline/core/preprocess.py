"""Imputation, encoding, scaling and column removal with a replayable log.

Each configured step is turned into a :class:`TransformRecord` whose
``params`` hold everything derived from the data (fill values, encoding
dictionaries, scaling statistics). Applying a record never looks at the data
again, so :func:`replay` of the log against the source table rebuilds the
output exactly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Literal, Mapping, Sequence

import pandas as pd

from common.logging import get_logger

from .errors import ConfigurationError
from .profiler import ColumnProfile, profile_column
from .table import MISSING, Table, is_missing, to_number

logger = get_logger("ml_pipeline.preprocess")

MissingStrategy = Literal["drop", "mean", "median", "mode", "constant"]
ScaleMethod = Literal["standardize", "normalize"]

MISSING_STRATEGIES = ("drop", "mean", "median", "mode", "constant")
SCALE_METHODS = ("standardize", "normalize")
ENCODING_METHODS = ("label",)

KIND_MISSING = "missing_values"
KIND_ENCODING = "categorical_encoding"
KIND_SCALING = "numeric_scaling"
KIND_REMOVAL = "column_removal"


@dataclass(frozen=True, slots=True)
class MissingValueStep:
    strategy: str
    columns: tuple[str, ...] = ()
    fill_value: Any = None


@dataclass(frozen=True, slots=True)
class EncodingStep:
    columns: tuple[str, ...]
    method: str = "label"


@dataclass(frozen=True, slots=True)
class ScalingStep:
    method: str
    columns: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RemovalStep:
    columns: tuple[str, ...]


Step = MissingValueStep | EncodingStep | ScalingStep | RemovalStep


@dataclass(frozen=True, slots=True)
class PreprocessConfig:
    """Grouped step lists, always applied missing -> encoding -> scaling -> removal."""

    missing_values: tuple[MissingValueStep, ...] = ()
    encoding: tuple[EncodingStep, ...] = ()
    scaling: tuple[ScalingStep, ...] = ()
    remove_columns: tuple[str, ...] = ()

    def steps(self) -> Iterator[Step]:
        yield from self.missing_values
        yield from self.encoding
        yield from self.scaling
        if self.remove_columns:
            yield RemovalStep(columns=tuple(self.remove_columns))


@dataclass(frozen=True, slots=True)
class TransformRecord:
    kind: str
    method: str
    columns: tuple[str, ...]
    params: Mapping[str, Any] = field(default_factory=dict)
    rows_affected: int = 0
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "method": self.method,
            "columns": list(self.columns),
            "params": _plain(self.params),
            "rowsAffected": self.rows_affected,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TransformRecord":
        return cls(
            kind=payload["type"],
            method=payload["method"],
            columns=tuple(payload.get("columns", ())),
            params=dict(payload.get("params", {})),
            rows_affected=int(payload.get("rowsAffected", 0)),
            warnings=tuple(payload.get("warnings", ())),
        )


@dataclass(frozen=True, slots=True)
class PreprocessResult:
    table: Table
    log: tuple[TransformRecord, ...]
    rows_removed: int
    columns_removed: tuple[str, ...]
    new_columns: tuple[str, ...]

    @property
    def warnings(self) -> list[str]:
        return [warning for record in self.log for warning in record.warnings]


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _numbers(table: Table, column: str) -> pd.Series:
    """Parsed numeric cells of ``column`` as a float series; other cells are dropped."""

    numbers = (to_number(row[column]) for row in table.rows)
    return pd.Series([number for number in numbers if number is not None], dtype="float64")


def _mode(values: Iterable[Any]) -> Any:
    """Most frequent value, first seen on ties; ``1``, ``1.0`` and ``True`` stay distinct."""

    counts: dict[tuple[type, Any], int] = {}
    first: dict[tuple[type, Any], Any] = {}
    for value in values:
        key = (type(value), value)
        counts[key] = counts.get(key, 0) + 1
        first.setdefault(key, value)
    best, best_count = MISSING, 0
    for key, count in counts.items():
        if count > best_count:
            best, best_count = first[key], count
    return best


class _ProfileLookup:
    """Column kinds from the caller's profiles, profiling unseen columns lazily."""

    def __init__(self, profiles: Sequence[ColumnProfile] | None):
        self._profiles = {profile.name: profile for profile in profiles or ()}

    def is_numeric(self, table: Table, column: str) -> bool:
        profile = self._profiles.get(column)
        if profile is None:
            profile = profile_column(table, column)
            self._profiles[column] = profile
        return profile.is_numeric


def _derive_missing(table: Table, step: MissingValueStep, kinds: _ProfileLookup) -> TransformRecord | None:
    if step.strategy not in MISSING_STRATEGIES:
        raise ConfigurationError(f"Unknown missing-value strategy '{step.strategy}'", code="INVALID_STEP")
    columns = tuple(step.columns) or table.columns
    table.require_columns(columns)

    if step.strategy == "drop":
        return TransformRecord(kind=KIND_MISSING, method="drop", columns=tuple(columns))

    if step.strategy == "constant" and step.fill_value is None:
        raise ConfigurationError("Constant imputation requires a fill value", code="INVALID_STEP")

    fill_values: dict[str, Any] = {}
    for column in columns:
        if step.strategy == "constant":
            fill_values[column] = step.fill_value
        elif step.strategy in ("mean", "median"):
            if not kinds.is_numeric(table, column):
                logger.debug("skipping %s imputation for categorical column %s", step.strategy, column)
                continue
            numbers = _numbers(table, column)
            if numbers.empty:
                continue
            fill_values[column] = float(numbers.mean() if step.strategy == "mean" else numbers.median())
        else:
            present = [row[column] for row in table.rows if not is_missing(row[column])]
            if present:
                fill_values[column] = _mode(present)
    return TransformRecord(
        kind=KIND_MISSING,
        method=step.strategy,
        columns=tuple(fill_values),
        params={"fillValues": fill_values},
    )


def _derive_encoding(table: Table, step: EncodingStep, kinds: _ProfileLookup) -> TransformRecord | None:
    if step.method not in ENCODING_METHODS:
        raise ConfigurationError(f"Unknown encoding method '{step.method}'", code="INVALID_STEP")
    if not step.columns:
        return None
    table.require_columns(step.columns)
    mappings: dict[str, dict[str, int]] = {}
    for column in step.columns:
        if kinds.is_numeric(table, column):
            logger.debug("skipping label encoding for numeric column %s", column)
            continue
        mapping: dict[str, int] = {}
        for row in table.rows:
            value = row[column]
            if is_missing(value):
                continue
            mapping.setdefault(str(value), len(mapping))
        mappings[column] = mapping
    return TransformRecord(
        kind=KIND_ENCODING,
        method=step.method,
        columns=tuple(mappings),
        params={"mappings": mappings},
    )


def _derive_scaling(table: Table, step: ScalingStep, kinds: _ProfileLookup) -> TransformRecord | None:
    if step.method not in SCALE_METHODS:
        raise ConfigurationError(f"Unknown scaling method '{step.method}'", code="INVALID_STEP")
    if not step.columns:
        return None
    table.require_columns(step.columns)
    stats: dict[str, dict[str, float]] = {}
    warnings: list[str] = []
    for column in step.columns:
        if not kinds.is_numeric(table, column):
            logger.debug("skipping scaling for categorical column %s", column)
            continue
        numbers = _numbers(table, column)
        if numbers.empty:
            continue
        low, high = float(numbers.min()), float(numbers.max())
        # Constancy comes from the values; a float std of equal values need not be 0.
        degenerate = high == low
        if step.method == "standardize":
            std = 0.0 if degenerate else float(numbers.std(ddof=0))
            stats[column] = {"mean": float(numbers.mean()), "std": std}
        else:
            stats[column] = {"min": low, "max": high}
        if degenerate:
            warning = f"{column}: zero range, scaled values are NaN"
            warnings.append(warning)
            logger.warning("%s scaling of %s divides by zero; writing NaN", step.method, column)
    return TransformRecord(
        kind=KIND_SCALING,
        method=step.method,
        columns=tuple(stats),
        params={"stats": stats},
        warnings=tuple(warnings),
    )


def _derive_removal(table: Table, step: RemovalStep) -> TransformRecord:
    table.require_columns(step.columns)
    return TransformRecord(kind=KIND_REMOVAL, method="remove", columns=tuple(step.columns))


def _with_column(columns: tuple[str, ...], name: str) -> tuple[str, ...]:
    return columns if name in columns else (*columns, name)


def _scale(value: Any, method: str, stats: Mapping[str, float]) -> float | None:
    number = to_number(value)
    if number is None:
        return MISSING
    if method == "standardize":
        if stats["std"] == 0:
            return math.nan
        return (number - stats["mean"]) / stats["std"]
    span = stats["max"] - stats["min"]
    if span == 0:
        return math.nan
    return (number - stats["min"]) / span


def apply_record(table: Table, record: TransformRecord) -> Table:
    """Apply one logged transform using only its stored parameters."""

    if record.kind == KIND_MISSING:
        if record.method == "drop":
            kept = tuple(
                dict(row) for row in table.rows if not any(is_missing(row[column]) for column in record.columns)
            )
            return Table(columns=table.columns, rows=kept)
        fill_values = record.params.get("fillValues", {})
        rows = []
        for row in table.rows:
            updated = dict(row)
            for column, fill in fill_values.items():
                if is_missing(updated[column]):
                    updated[column] = fill
            rows.append(updated)
        return Table(columns=table.columns, rows=tuple(rows))

    if record.kind == KIND_ENCODING:
        columns = table.columns
        rows = [dict(row) for row in table.rows]
        for column, mapping in record.params.get("mappings", {}).items():
            derived = f"{column}_encoded"
            columns = _with_column(columns, derived)
            for row in rows:
                value = row[column]
                row[derived] = MISSING if is_missing(value) else mapping.get(str(value), MISSING)
        return Table(columns=columns, rows=tuple(rows))

    if record.kind == KIND_SCALING:
        columns = table.columns
        rows = [dict(row) for row in table.rows]
        for column, stats in record.params.get("stats", {}).items():
            derived = f"{column}_scaled"
            columns = _with_column(columns, derived)
            for row in rows:
                row[derived] = _scale(row[column], record.method, stats)
        return Table(columns=columns, rows=tuple(rows))

    if record.kind == KIND_REMOVAL:
        dropped = set(record.columns)
        columns = tuple(name for name in table.columns if name not in dropped)
        rows = tuple({name: row[name] for name in columns} for row in table.rows)
        return Table(columns=columns, rows=rows)

    raise ConfigurationError(f"Unknown transform type '{record.kind}'", code="INVALID_STEP")


def apply_transforms(
    table: Table,
    config: PreprocessConfig,
    profiles: Sequence[ColumnProfile] | None = None,
) -> PreprocessResult:
    """Run every configured step against ``table`` and log what was derived."""

    kinds = _ProfileLookup(profiles)
    log: list[TransformRecord] = []
    new_columns: list[str] = []
    removed: list[str] = []
    rows_removed = 0
    current = table

    for step in config.steps():
        if isinstance(step, MissingValueStep):
            record = _derive_missing(current, step, kinds)
        elif isinstance(step, EncodingStep):
            record = _derive_encoding(current, step, kinds)
        elif isinstance(step, ScalingStep):
            record = _derive_scaling(current, step, kinds)
        else:
            record = _derive_removal(current, step)
        if record is None:
            continue

        before_rows, before_columns = len(current), current.columns
        current = apply_record(current, record)
        dropped_rows = before_rows - len(current)
        if dropped_rows:
            record = TransformRecord(
                kind=record.kind,
                method=record.method,
                columns=record.columns,
                params=record.params,
                rows_affected=dropped_rows,
                warnings=record.warnings,
            )
        rows_removed += dropped_rows
        for name in current.columns:
            if name not in before_columns and name not in new_columns:
                new_columns.append(name)
        if record.kind == KIND_REMOVAL:
            removed.extend(name for name in record.columns if name not in removed)
        log.append(record)

    logger.info(
        "preprocessed %d rows with %d transforms (%d rows removed)",
        len(table),
        len(log),
        rows_removed,
    )
    return PreprocessResult(
        table=current,
        log=tuple(log),
        rows_removed=rows_removed,
        columns_removed=tuple(removed),
        new_columns=tuple(name for name in new_columns if name in current.columns),
    )


def replay(table: Table, log: Iterable[TransformRecord | Mapping[str, Any]]) -> Table:
    """Re-apply a transform log, accepting records or their ``to_dict`` form."""

    current = table
    for entry in log:
        record = entry if isinstance(entry, TransformRecord) else TransformRecord.from_dict(entry)
        current = apply_record(current, record)
    return current


__all__ = [
    "EncodingStep",
    "MissingValueStep",
    "PreprocessConfig",
    "PreprocessResult",
    "RemovalStep",
    "ScalingStep",
    "TransformRecord",
    "apply_record",
    "apply_transforms",
    "replay",
]
