"""Input checks shared by every trainer, run before any fitting starts."""

from __future__ import annotations

import math
from numbers import Real
from typing import Sequence

from .errors import DataError

Matrix = list[list[float]]
Vector = list[float]


def _is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def validate_features(X: Sequence[Sequence[float]]) -> Matrix:
    if not X:
        raise DataError("Feature matrix is empty", code="EMPTY_INPUT")
    width = len(X[0])
    for index, row in enumerate(X):
        if len(row) != width:
            raise DataError(
                f"Row {index} has {len(row)} features, expected {width}",
                code="SHAPE_MISMATCH",
                details={"row": index},
            )
        for column, value in enumerate(row):
            if not _is_number(value):
                raise DataError(
                    f"Non-numeric value {value!r} at row {index}, feature {column}; coerce before fitting",
                    code="NON_NUMERIC_INPUT",
                    details={"row": index, "feature": column},
                )
    return [[float(value) for value in row] for row in X]


def validate_training_data(X: Sequence[Sequence[float]], y: Sequence[float]) -> tuple[Matrix, Vector]:
    """Reject empty, ragged, non-numeric or misaligned ``X``/``y``."""

    matrix = validate_features(X)
    if len(matrix) != len(y):
        raise DataError(
            f"Feature matrix has {len(matrix)} rows but label vector has {len(y)}",
            code="SHAPE_MISMATCH",
            details={"rows": len(matrix), "labels": len(y)},
        )
    for index, value in enumerate(y):
        if not _is_number(value):
            raise DataError(
                f"Non-numeric label {value!r} at row {index}; coerce before fitting",
                code="NON_NUMERIC_INPUT",
                details={"row": index},
            )
    return matrix, [float(value) for value in y]


def check_classification_target(y: Sequence[float], *, binary: bool = False) -> list[float]:
    """Return the sorted class labels or raise a :class:`DataError` with a hint."""

    classes = sorted(set(y))
    if any(not float(label).is_integer() for label in classes):
        raise DataError(
            "Target has non-integer values; this looks like regression, not classification",
            code="TARGET_LOOKS_CONTINUOUS",
            details={"uniqueValues": len(classes)},
        )
    if len(classes) < 2:
        raise DataError(
            f"Target has a single class ({classes[0] if classes else 'none'}); "
            "classification needs at least two classes",
            code="SINGLE_CLASS",
            details={"classes": classes},
        )
    if binary and not set(classes) <= {0.0, 1.0}:
        raise DataError(
            "Logistic regression needs a binary 0/1 target; encode the target or use a tree model",
            code="NON_BINARY_TARGET",
            details={"classes": classes[:20]},
        )
    return classes


__all__ = [
    "Matrix",
    "Vector",
    "check_classification_target",
    "validate_features",
    "validate_training_data",
]
