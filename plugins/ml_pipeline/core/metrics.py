"""Evaluation metrics and the variance feature-importance proxy."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from common.logging import get_logger

from .errors import DataError, EvaluationError

logger = get_logger("ml_pipeline.metrics")

METRIC_DECIMALS = 4
IMPORTANCE_DECIMALS = 2


def _round(value: float, digits: int = METRIC_DECIMALS) -> float:
    return value if math.isnan(value) else round(value, digits)


def _check_pair(y_true: Sequence[Any], y_pred: Sequence[Any]) -> None:
    if len(y_true) != len(y_pred):
        raise DataError(
            f"Got {len(y_true)} true values but {len(y_pred)} predictions",
            code="SHAPE_MISMATCH",
            details={"actual": len(y_true), "predicted": len(y_pred)},
        )
    if not y_true:
        raise DataError("Cannot compute metrics on empty arrays", code="EMPTY_INPUT")


@dataclass(frozen=True, slots=True)
class RegressionMetrics:
    mae: float
    mse: float
    rmse: float
    r2: float

    def to_dict(self) -> dict[str, float]:
        return {
            "mae": _round(self.mae),
            "mse": _round(self.mse),
            "rmse": _round(self.rmse),
            "r2": _round(self.r2),
        }


@dataclass(frozen=True, slots=True)
class ConfusionMatrix:
    tp: int
    tn: int
    fp: int
    fn: int

    @property
    def total(self) -> int:
        return self.tp + self.tn + self.fp + self.fn

    def to_dict(self) -> dict[str, int]:
        return {
            "truePositive": self.tp,
            "trueNegative": self.tn,
            "falsePositive": self.fp,
            "falseNegative": self.fn,
        }


@dataclass(frozen=True, slots=True)
class ClassificationMetrics:
    accuracy: float
    precision: float
    recall: float
    f1: float
    confusion_matrix: ConfusionMatrix

    def to_dict(self) -> dict[str, Any]:
        return {
            "accuracy": _round(self.accuracy),
            "precision": _round(self.precision),
            "recall": _round(self.recall),
            "f1Score": _round(self.f1),
            "confusionMatrix": self.confusion_matrix.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class MulticlassMetrics:
    accuracy: float
    precision: float
    recall: float
    f1: float
    confusion_matrix: dict[str, dict[str, int]]
    classes: tuple[str, ...]
    total_samples: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "accuracy": _round(self.accuracy),
            "precision": _round(self.precision),
            "recall": _round(self.recall),
            "f1Score": _round(self.f1),
            "confusionMatrix": {actual: dict(row) for actual, row in self.confusion_matrix.items()},
            "classes": list(self.classes),
            "totalSamples": self.total_samples,
        }


@dataclass(frozen=True, slots=True)
class FeatureImportance:
    feature: str
    importance: float

    def to_dict(self) -> dict[str, Any]:
        return {"feature": self.feature, "importance": round(self.importance, IMPORTANCE_DECIMALS)}


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Metrics for one partition together with the kind that produced them."""

    kind: str
    metrics: RegressionMetrics | ClassificationMetrics | MulticlassMetrics
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **self.metrics.to_dict(), **self.extra}


def regression_metrics(y_true: Sequence[float], y_pred: Sequence[float]) -> RegressionMetrics:
    """MAE, MSE, RMSE and R²; R² is ``nan`` when the true values are constant."""

    _check_pair(y_true, y_pred)
    n = len(y_true)
    residuals = [actual - predicted for actual, predicted in zip(y_true, y_pred)]
    mae = sum(abs(r) for r in residuals) / n
    ss_res = sum(r * r for r in residuals)
    mse = ss_res / n
    mean = sum(y_true) / n
    ss_tot = sum((actual - mean) ** 2 for actual in y_true)
    # Float sums of equal values can leave a residue, so compare the values.
    if max(y_true) == min(y_true):
        logger.warning("R² is undefined: the true values are constant (%s)", y_true[0])
        r2 = math.nan
    else:
        r2 = 1 - ss_res / ss_tot
    return RegressionMetrics(mae=mae, mse=mse, rmse=math.sqrt(mse), r2=r2)


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def confusion_counts(y_true: Sequence[float], y_pred: Sequence[float]) -> ConfusionMatrix:
    tp = tn = fp = fn = 0
    for actual, predicted in zip(y_true, y_pred):
        if actual == 1 and predicted == 1:
            tp += 1
        elif actual == 0 and predicted == 0:
            tn += 1
        elif actual == 0 and predicted == 1:
            fp += 1
        elif actual == 1 and predicted == 0:
            fn += 1
    return ConfusionMatrix(tp=tp, tn=tn, fp=fp, fn=fn)


def binary_classification_metrics(y_true: Sequence[float], y_pred: Sequence[float]) -> ClassificationMetrics:
    """Binary metrics over 0/1 labels.

    Pairs outside {0, 1} are not counted in the confusion matrix; if none are
    left an :class:`EvaluationError` is raised instead of reporting zeros.
    """

    _check_pair(y_true, y_pred)
    matrix = confusion_counts(y_true, y_pred)
    if matrix.total == 0:
        raise EvaluationError(
            "Confusion matrix is empty; labels and predictions must be 0 or 1",
            code="EMPTY_CONFUSION_MATRIX",
            details={"samples": len(y_true)},
        )
    precision = _ratio(matrix.tp, matrix.tp + matrix.fp)
    recall = _ratio(matrix.tp, matrix.tp + matrix.fn)
    return ClassificationMetrics(
        accuracy=(matrix.tp + matrix.tn) / len(y_true),
        precision=precision,
        recall=recall,
        f1=_ratio(2 * precision * recall, precision + recall),
        confusion_matrix=matrix,
    )


def label_key(value: Any) -> str:
    """String form of a class label; integral floats print without ``.0``."""

    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def multiclass_classification_metrics(y_true: Sequence[Any], y_pred: Sequence[Any]) -> MulticlassMetrics:
    """Accuracy plus macro-averaged precision and recall over every observed class."""

    _check_pair(y_true, y_pred)
    actual = [label_key(value) for value in y_true]
    predicted = [label_key(value) for value in y_pred]
    classes = sorted(set(actual) | set(predicted))
    matrix = {row: {column: 0 for column in classes} for row in classes}
    for a, p in zip(actual, predicted):
        matrix[a][p] += 1

    correct = sum(matrix[label][label] for label in classes)
    precisions = []
    recalls = []
    for label in classes:
        tp = matrix[label][label]
        predicted_as = sum(matrix[row][label] for row in classes)
        actually = sum(matrix[label].values())
        precisions.append(_ratio(tp, predicted_as))
        recalls.append(_ratio(tp, actually))
    precision = sum(precisions) / len(classes)
    recall = sum(recalls) / len(classes)
    return MulticlassMetrics(
        accuracy=correct / len(actual),
        precision=precision,
        recall=recall,
        f1=_ratio(2 * precision * recall, precision + recall),
        confusion_matrix=matrix,
        classes=tuple(classes),
        total_samples=len(actual),
    )


def is_binary(*label_sets: Sequence[float]) -> bool:
    return all(value in (0, 1) for labels in label_sets for value in labels)


def classification_metrics(
    y_true: Sequence[float], y_pred: Sequence[float]
) -> ClassificationMetrics | MulticlassMetrics:
    if is_binary(y_true, y_pred):
        return binary_classification_metrics(y_true, y_pred)
    return multiclass_classification_metrics(y_true, y_pred)


def evaluate(task_type: str, y_true: Sequence[float], y_pred: Sequence[float]) -> Evaluation:
    if task_type == "regression":
        return Evaluation(kind="regression", metrics=regression_metrics(y_true, y_pred))
    metrics = classification_metrics(y_true, y_pred)
    kind = "binary" if isinstance(metrics, ClassificationMetrics) else "multiclass"
    return Evaluation(kind=kind, metrics=metrics)


def feature_importance(X: Sequence[Sequence[float]], feature_names: Sequence[str]) -> list[FeatureImportance]:
    """Rank features by their share of the total column variance, in percent.

    A cheap proxy that ignores the model. Ties keep the feature order; if
    every column is constant all importances are zero.
    """

    if not X:
        raise DataError("Cannot rank features of an empty matrix", code="EMPTY_INPUT")
    width = len(X[0])
    if len(feature_names) != width:
        raise DataError(
            f"Got {len(feature_names)} feature names for {width} columns",
            code="SHAPE_MISMATCH",
            details={"names": len(feature_names), "columns": width},
        )
    n = len(X)
    variances = []
    for j in range(width):
        column = [row[j] for row in X]
        if max(column) == min(column):
            variances.append(0.0)
            continue
        mean = sum(column) / n
        variances.append(sum((value - mean) ** 2 for value in column) / n)
    total = sum(variances)
    ranked = [
        FeatureImportance(feature=name, importance=(variance / total * 100) if total > 0 else 0.0)
        for name, variance in zip(feature_names, variances)
    ]
    return sorted(ranked, key=lambda item: item.importance, reverse=True)


__all__ = [
    "ClassificationMetrics",
    "ConfusionMatrix",
    "Evaluation",
    "FeatureImportance",
    "MulticlassMetrics",
    "RegressionMetrics",
    "binary_classification_metrics",
    "classification_metrics",
    "confusion_counts",
    "evaluate",
    "feature_importance",
    "is_binary",
    "label_key",
    "multiclass_classification_metrics",
    "regression_metrics",
]
