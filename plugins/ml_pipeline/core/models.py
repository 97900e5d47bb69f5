"""The model union and the single ``fit``/``predict`` dispatch over it."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Callable, Mapping, Sequence

from .errors import ConfigurationError, DataError
from .inputs import validate_features
from .linear import (
    LinearRegressionModel,
    LogisticRegressionModel,
    fit_linear_regression,
    fit_logistic_regression,
    predict_linear_regression,
    predict_logistic_regression,
    to_classes,
)
from .trees import (
    DecisionTreeModel,
    RandomForestModel,
    TaskType,
    fit_decision_tree,
    fit_random_forest,
    predict_decision_tree,
    predict_random_forest,
)

Model = LinearRegressionModel | LogisticRegressionModel | DecisionTreeModel | RandomForestModel

MODEL_TYPES = ("linear_regression", "logistic_regression", "decision_tree", "random_forest")
TASK_TYPES = ("classification", "regression")

_SUPPORTED_TASKS: dict[str, tuple[str, ...]] = {
    "linear_regression": ("regression",),
    "logistic_regression": ("classification",),
    "decision_tree": TASK_TYPES,
    "random_forest": TASK_TYPES,
}


@dataclass(frozen=True, slots=True)
class Hyperparameters:
    learning_rate: float = 0.01
    iterations: int = 1000
    max_depth: int = 5
    min_samples: int = 2
    n_trees: int = 10
    bootstrap: bool = True
    seed: int = 42
    n_jobs: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# name -> (type, lower, upper, lower bound exclusive)
_BOUNDS: dict[str, tuple[type, float, float, bool]] = {
    "learning_rate": (float, 0.0, 10.0, True),
    "iterations": (int, 1, 100_000, False),
    "max_depth": (int, 1, 50, False),
    "min_samples": (int, 1, 10_000, False),
    "n_trees": (int, 1, 500, False),
    "n_jobs": (int, 1, 32, False),
}


def check_model_type(model_type: str) -> str:
    if model_type not in MODEL_TYPES:
        raise ConfigurationError(
            f"Unknown model type '{model_type}'",
            code="UNKNOWN_MODEL_TYPE",
            details={"allowed": list(MODEL_TYPES)},
        )
    return model_type


def check_task_type(model_type: str, task_type: str) -> TaskType:
    if task_type not in TASK_TYPES:
        raise ConfigurationError(
            f"Unknown task type '{task_type}'",
            code="UNKNOWN_TASK_TYPE",
            details={"allowed": list(TASK_TYPES)},
        )
    supported = _SUPPORTED_TASKS[check_model_type(model_type)]
    if task_type not in supported:
        raise ConfigurationError(
            f"{model_type} does not support {task_type} tasks",
            code="MODEL_TASK_MISMATCH",
            details={"modelType": model_type, "taskType": task_type, "supported": list(supported)},
        )
    return task_type  # type: ignore[return-value]


def _coerce_hyperparameter(name: str, value: Any) -> Any:
    if name == "bootstrap":
        if not isinstance(value, bool):
            raise ConfigurationError(
                "bootstrap must be true or false", code="INVALID_HYPERPARAMETER", details={"name": name}
            )
        return value
    if name == "seed":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError("seed must be an integer", code="INVALID_HYPERPARAMETER", details={"name": name})
        return value
    kind, lower, upper, exclusive = _BOUNDS[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(
            f"{name} must be a number", code="INVALID_HYPERPARAMETER", details={"name": name, "value": value}
        )
    if kind is int and not float(value).is_integer():
        raise ConfigurationError(
            f"{name} must be an integer", code="INVALID_HYPERPARAMETER", details={"name": name, "value": value}
        )
    too_low = value <= lower if exclusive else value < lower
    if not math.isfinite(value) or too_low or value > upper:
        bracket = "(" if exclusive else "["
        raise ConfigurationError(
            f"{name} must be in {bracket}{lower}, {upper}]",
            code="INVALID_HYPERPARAMETER",
            details={"name": name, "value": value},
        )
    return kind(value)


def resolve_hyperparameters(
    overrides: Mapping[str, Any] | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> Hyperparameters:
    """Merge ``defaults`` and ``overrides`` (in that order) and range-check the result.

    ``None`` values are ignored so optional request fields fall through to
    the defaults.
    """

    known = {field.name for field in fields(Hyperparameters)}
    merged: dict[str, Any] = {}
    for source in (defaults or {}, overrides or {}):
        for name, value in source.items():
            if name not in known:
                raise ConfigurationError(
                    f"Unknown hyperparameter '{name}'",
                    code="INVALID_HYPERPARAMETER",
                    details={"name": name, "allowed": sorted(known)},
                )
            if value is not None:
                merged[name] = _coerce_hyperparameter(name, value)
    return Hyperparameters(**merged)


def fit(
    model_type: str,
    X: Sequence[Sequence[float]],
    y: Sequence[float],
    task_type: str = "classification",
    hyperparameters: Hyperparameters | None = None,
) -> Model:
    task = check_task_type(model_type, task_type)
    params = hyperparameters or Hyperparameters()
    if model_type == "linear_regression":
        return fit_linear_regression(X, y)
    if model_type == "logistic_regression":
        return fit_logistic_regression(X, y, learning_rate=params.learning_rate, iterations=params.iterations)
    if model_type == "decision_tree":
        return fit_decision_tree(
            X, y, task_type=task, max_depth=params.max_depth, min_samples=params.min_samples
        )
    return fit_random_forest(
        X,
        y,
        task_type=task,
        n_trees=params.n_trees,
        max_depth=params.max_depth,
        min_samples=params.min_samples,
        bootstrap=params.bootstrap,
        seed=params.seed,
        n_jobs=params.n_jobs,
    )


_PREDICTORS: dict[type, Callable[[Any, Sequence[Sequence[float]]], list[float]]] = {
    LinearRegressionModel: predict_linear_regression,
    LogisticRegressionModel: predict_logistic_regression,
    DecisionTreeModel: predict_decision_tree,
    RandomForestModel: predict_random_forest,
}

_MODEL_NAMES: dict[type, str] = {
    LinearRegressionModel: "linear_regression",
    LogisticRegressionModel: "logistic_regression",
    DecisionTreeModel: "decision_tree",
    RandomForestModel: "random_forest",
}


def model_type_of(model: Model) -> str:
    return _MODEL_NAMES[type(model)]


def n_features(model: Model) -> int:
    if isinstance(model, (LinearRegressionModel, LogisticRegressionModel)):
        return len(model.coefficients)
    return model.n_features


def predict(model: Model, X: Sequence[Sequence[float]]) -> list[float]:
    """Raw model output: values for regressors, probabilities for logistic, labels for trees."""

    matrix = validate_features(X)
    expected = n_features(model)
    if len(matrix[0]) != expected:
        raise DataError(
            f"Model expects {expected} features, got {len(matrix[0])}",
            code="SHAPE_MISMATCH",
            details={"expected": expected, "received": len(matrix[0])},
        )
    return _PREDICTORS[type(model)](model, matrix)


def predict_classes(model: Model, X: Sequence[Sequence[float]], threshold: float = 0.5) -> list[float]:
    outputs = predict(model, X)
    if isinstance(model, LogisticRegressionModel):
        return to_classes(outputs, threshold)
    return outputs


def describe(model: Model) -> dict[str, Any]:
    """Small JSON-ready summary of a fitted model."""

    summary: dict[str, Any] = {"type": model_type_of(model), "nFeatures": n_features(model)}
    if isinstance(model, (LinearRegressionModel, LogisticRegressionModel)):
        summary["intercept"] = model.intercept
        summary["coefficients"] = list(model.coefficients)
    if isinstance(model, DecisionTreeModel):
        summary.update(taskType=model.task_type, maxDepth=model.max_depth, depth=model.depth)
    if isinstance(model, RandomForestModel):
        summary.update(taskType=model.task_type, nTrees=model.n_trees, maxDepth=model.max_depth)
    return summary


__all__ = [
    "Hyperparameters",
    "MODEL_TYPES",
    "Model",
    "TASK_TYPES",
    "check_model_type",
    "check_task_type",
    "describe",
    "fit",
    "model_type_of",
    "n_features",
    "predict",
    "predict_classes",
    "resolve_hyperparameters",
]
