"""Linear and logistic regression written against plain Python lists."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from common.logging import get_logger

from .errors import NumericalError
from .inputs import Matrix, Vector, check_classification_target, validate_features, validate_training_data

logger = get_logger("ml_pipeline.linear")

PIVOT_TOLERANCE = 1e-10


@dataclass(frozen=True, slots=True)
class LinearRegressionModel:
    intercept: float
    coefficients: tuple[float, ...]


@dataclass(frozen=True, slots=True)
class LogisticRegressionModel:
    intercept: float
    coefficients: tuple[float, ...]
    learning_rate: float
    iterations: int


def transpose(matrix: Matrix) -> Matrix:
    return [list(column) for column in zip(*matrix)]


def matmul(a: Matrix, b: Matrix) -> Matrix:
    columns = transpose(b)
    return [[sum(x * y for x, y in zip(row, column)) for column in columns] for row in a]


def matvec(a: Matrix, v: Vector) -> Vector:
    return [sum(x * y for x, y in zip(row, v)) for row in a]


def invert(matrix: Matrix) -> Matrix:
    """Gauss-Jordan inversion with partial pivoting.

    Raises :class:`NumericalError` (``SINGULAR_MATRIX``) as soon as a pivot
    falls below :data:`PIVOT_TOLERANCE` in magnitude.
    """

    n = len(matrix)
    augmented = [
        [float(value) for value in row] + [1.0 if i == j else 0.0 for j in range(n)]
        for i, row in enumerate(matrix)
    ]
    for i in range(n):
        pivot_row = max(range(i, n), key=lambda k: abs(augmented[k][i]))
        augmented[i], augmented[pivot_row] = augmented[pivot_row], augmented[i]
        pivot = augmented[i][i]
        if abs(pivot) < PIVOT_TOLERANCE:
            raise NumericalError(
                "Matrix is singular; features are collinear or constant",
                code="SINGULAR_MATRIX",
                details={"pivotIndex": i, "pivot": pivot},
            )
        augmented[i] = [value / pivot for value in augmented[i]]
        for k in range(n):
            if k == i:
                continue
            factor = augmented[k][i]
            if factor:
                augmented[k] = [a - factor * b for a, b in zip(augmented[k], augmented[i])]
    return [row[n:] for row in augmented]


def fit_linear_regression(X: Sequence[Sequence[float]], y: Sequence[float]) -> LinearRegressionModel:
    """Ordinary least squares via the normal equation ``(XᵀX)⁻¹Xᵀy``."""

    matrix, labels = validate_training_data(X, y)
    with_bias = [[1.0, *row] for row in matrix]
    xt = transpose(with_bias)
    theta = matvec(invert(matmul(xt, with_bias)), matvec(xt, labels))
    logger.debug("linear regression fitted on %d rows, %d features", len(matrix), len(theta) - 1)
    return LinearRegressionModel(intercept=theta[0], coefficients=tuple(theta[1:]))


def predict_linear_regression(model: LinearRegressionModel, X: Sequence[Sequence[float]]) -> list[float]:
    return [
        model.intercept + sum(c * x for c, x in zip(model.coefficients, row))
        for row in validate_features(X)
    ]


def sigmoid(z: float) -> float:
    # Split on sign so exp never overflows.
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    ez = math.exp(z)
    return ez / (1.0 + ez)


def fit_logistic_regression(
    X: Sequence[Sequence[float]],
    y: Sequence[float],
    *,
    learning_rate: float = 0.01,
    iterations: int = 1000,
) -> LogisticRegressionModel:
    """Batch gradient descent on the mean cross-entropy gradient."""

    matrix, labels = validate_training_data(X, y)
    check_classification_target(labels, binary=True)
    n, m = len(matrix), len(matrix[0])
    intercept = 0.0
    weights = [0.0] * m

    for _ in range(int(iterations)):
        errors = [
            sigmoid(intercept + sum(w * x for w, x in zip(weights, row))) - label
            for row, label in zip(matrix, labels)
        ]
        intercept -= learning_rate * sum(errors) / n
        gradients = [sum(error * row[j] for error, row in zip(errors, matrix)) / n for j in range(m)]
        weights = [w - learning_rate * g for w, g in zip(weights, gradients)]

    logger.debug("logistic regression fitted on %d rows in %d iterations", n, iterations)
    return LogisticRegressionModel(
        intercept=intercept,
        coefficients=tuple(weights),
        learning_rate=float(learning_rate),
        iterations=int(iterations),
    )


def predict_logistic_regression(model: LogisticRegressionModel, X: Sequence[Sequence[float]]) -> list[float]:
    """Return probabilities of the positive class, each in ``[0, 1]``."""

    return [
        sigmoid(model.intercept + sum(c * x for c, x in zip(model.coefficients, row)))
        for row in validate_features(X)
    ]


def to_classes(probabilities: Sequence[float], threshold: float = 0.5) -> list[float]:
    return [1.0 if probability >= threshold else 0.0 for probability in probabilities]


__all__ = [
    "LinearRegressionModel",
    "LogisticRegressionModel",
    "PIVOT_TOLERANCE",
    "fit_linear_regression",
    "fit_logistic_regression",
    "invert",
    "predict_linear_regression",
    "predict_logistic_regression",
    "sigmoid",
    "to_classes",
]
