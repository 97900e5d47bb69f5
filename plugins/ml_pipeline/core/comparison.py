"""Score externally produced prediction tables against a ground-truth table."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from common.logging import get_logger

from .errors import DataError
from .metrics import MulticlassMetrics, label_key, multiclass_classification_metrics
from .table import Table, is_missing, to_number

logger = get_logger("ml_pipeline.comparison")

PROBABILITY_COLUMNS = ("probability", "prob")


def _find_column(table: Table, name: str) -> str | None:
    for column in table.columns:
        if column.strip().lower() == name:
            return column
    return None


def _validate(table: Table, label: str, value_column: str) -> tuple[str, str]:
    if table.is_empty:
        raise DataError(f"{label} CSV is empty", code="EMPTY_TABLE")
    id_column = _find_column(table, "id")
    if id_column is None:
        raise DataError(f'{label} CSV must contain an "id" column', code="MISSING_COLUMNS", details={"columns": ["id"]})
    values = _find_column(table, value_column)
    if values is None:
        raise DataError(
            f'{label} CSV must contain an "{value_column}" column',
            code="MISSING_COLUMNS",
            details={"columns": [value_column]},
        )

    missing_ids = sum(1 for row in table.rows if is_missing(row[id_column]))
    missing_values = sum(1 for row in table.rows if is_missing(row[values]))
    if missing_ids or missing_values:
        raise DataError(
            f"{label} CSV contains {missing_ids} missing IDs and {missing_values} missing {value_column} values",
            code="MISSING_VALUES",
            details={"missingIds": missing_ids, f"missing{value_column.capitalize()}": missing_values},
        )
    ids = [label_key(row[id_column]) for row in table.rows]
    if len(set(ids)) != len(ids):
        raise DataError(f"{label} CSV contains duplicate IDs", code="DUPLICATE_IDS")
    return id_column, values


def validate_ground_truth(table: Table) -> tuple[str, str]:
    """Return the ``(id, actual)`` column names or raise :class:`DataError`."""

    return _validate(table, "Ground truth", "actual")


def validate_predictions(table: Table) -> tuple[str, str]:
    """Return the ``(id, predicted)`` column names or raise :class:`DataError`."""

    return _validate(table, "Predictions", "predicted")


@dataclass(frozen=True, slots=True)
class AlignedPredictions:
    actual: list[str]
    predicted: list[str]
    probabilities: list[float]
    records: list[dict[str, Any]]
    mismatches: list[str]


def align_predictions(ground_truth: Table, predictions: Table) -> AlignedPredictions:
    """Join predictions to ground truth by id, in prediction order."""

    truth_id, actual_column = validate_ground_truth(ground_truth)
    pred_id, predicted_column = validate_predictions(predictions)
    probability_column = next(
        (column for column in (_find_column(predictions, name) for name in PROBABILITY_COLUMNS) if column),
        None,
    )
    truth = {label_key(row[truth_id]): label_key(row[actual_column]) for row in ground_truth.rows}

    actual: list[str] = []
    predicted: list[str] = []
    probabilities: list[float] = []
    records: list[dict[str, Any]] = []
    mismatches: list[str] = []
    for row in predictions.rows:
        key = label_key(row[pred_id])
        if key not in truth:
            mismatches.append(key)
            continue
        label = label_key(row[predicted_column])
        probability = to_number(row[probability_column]) if probability_column else None
        actual.append(truth[key])
        predicted.append(label)
        if probability is not None:
            probabilities.append(probability)
        records.append({"id": key, "actual": truth[key], "predicted": label, "probability": probability})

    if mismatches:
        logger.warning("%d prediction ids not found in ground truth", len(mismatches))
    return AlignedPredictions(
        actual=actual,
        predicted=predicted,
        probabilities=probabilities,
        records=records,
        mismatches=mismatches,
    )


@dataclass(frozen=True, slots=True)
class ModelEvaluation:
    name: str
    metrics: MulticlassMetrics
    mismatches: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"modelName": self.name, "metrics": self.metrics.to_dict(), "mismatches": list(self.mismatches)}


def evaluate_predictions(ground_truth: Table, predictions: Table, name: str = "model") -> ModelEvaluation:
    aligned = align_predictions(ground_truth, predictions)
    if not aligned.actual:
        raise DataError(
            f"No prediction ids of '{name}' match the ground truth",
            code="NO_ALIGNED_PREDICTIONS",
            details={"model": name, "mismatches": len(aligned.mismatches)},
        )
    metrics = multiclass_classification_metrics(aligned.actual, aligned.predicted)
    return ModelEvaluation(name=name, metrics=metrics, mismatches=aligned.mismatches)


def compare_models(results: Sequence[ModelEvaluation]) -> dict[str, Any]:
    """Rank models by macro F1, best first; equal scores keep input order."""

    ranked = sorted(results, key=lambda result: -result.metrics.f1)
    comparison = []
    for rank, result in enumerate(ranked, start=1):
        metrics = result.metrics.to_dict()
        comparison.append(
            {
                "rank": rank,
                "modelName": result.name,
                "accuracy": metrics["accuracy"],
                "precision": metrics["precision"],
                "recall": metrics["recall"],
                "f1Score": metrics["f1Score"],
                "totalSamples": metrics["totalSamples"],
            }
        )
    return {"comparison": comparison, "bestModel": ranked[0].to_dict() if ranked else None}


__all__ = [
    "AlignedPredictions",
    "ModelEvaluation",
    "align_predictions",
    "compare_models",
    "evaluate_predictions",
    "validate_ground_truth",
    "validate_predictions",
]
