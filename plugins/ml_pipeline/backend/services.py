"""Service layer orchestrating ML pipeline operations.

Every function takes the :class:`SessionStore` it works against, so the
Flask app and the CLI can each bring their own.
"""

from __future__ import annotations

import time
from typing import Any, Mapping, Sequence

from common.logging import get_logger

from ..core.comparison import compare_models, evaluate_predictions
from ..core.errors import ConfigurationError
from ..core.metrics import evaluate, feature_importance
from ..core.models import (
    MODEL_TYPES,
    TASK_TYPES,
    check_task_type,
    describe,
    fit,
    predict,
    predict_classes,
    resolve_hyperparameters,
)
from ..core.preprocess import apply_transforms
from ..core.profiler import profile_table
from ..core.splitter import split_table
from ..core.table import extract_features, load_csv_bytes, load_table_bytes
from .schemas import PreprocessRequest, SplitRequest, TrainRequest
from .utils import (
    SessionStore,
    defaults_from_settings,
    enforce_table_limits,
    hyperparameter_defaults,
    limits_from_settings,
)

logger = get_logger("ml_pipeline.services")

PREDICTIONS_SAMPLE_SIZE = 20


def _profiles_payload(table) -> list[dict[str, Any]]:
    return [profile.to_dict() for profile in profile_table(table)]


def dataset_load_from_bytes(
    store: SessionStore,
    data: bytes,
    settings: Mapping[str, Any] | None = None,
    filename: str | None = None,
) -> dict[str, Any]:
    limits = limits_from_settings(settings)
    table = load_table_bytes(data, filename)
    enforce_table_limits(table, max_rows=limits["max_rows"], max_columns=limits["max_columns"])
    profiles = profile_table(table)
    session = store.create(table, profiles)
    logger.info("session %s loaded %d rows x %d columns", session.session_id, len(table), len(table.columns))
    return {
        "session_id": session.session_id,
        "rows": len(table),
        "columns": [profile.to_dict() for profile in profiles],
        "preview": table.head(limits["preview_rows"]),
    }


def dataset_profile(store: SessionStore, session_id: str) -> dict[str, Any]:
    session = store.get(session_id)
    table = session.current_table
    return {
        "session_id": session.session_id,
        "stage": session.stage,
        "rows": len(table),
        "columns": _profiles_payload(table),
    }


def run_preprocess(
    store: SessionStore, request: PreprocessRequest, settings: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """Apply the configured steps to the raw table of the session.

    Preprocessing always starts again from the uploaded data, so running it
    twice does not stack transforms.
    """

    limits = limits_from_settings(settings)
    session = store.get(request.session_id)
    result = apply_transforms(session.raw_table, request.to_config(), session.profiles)
    summary = {
        "transformations": [record.to_dict() for record in result.log],
        "rowsRemoved": result.rows_removed,
        "columnsRemoved": list(result.columns_removed),
        "newColumns": list(result.new_columns),
        "warnings": result.warnings,
    }
    store.set_preprocessed_table(request.session_id, result.table, result.log, summary)
    return {
        **summary,
        "previewRows": result.table.head(limits["preview_rows"]),
        "rows": len(result.table),
        "columns": _profiles_payload(result.table),
    }


def run_split(
    store: SessionStore, request: SplitRequest, settings: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    limits = limits_from_settings(settings)
    defaults = defaults_from_settings(settings)
    session = store.get(request.session_id)
    test_fraction = request.test_fraction if request.test_fraction is not None else defaults["test_fraction"]
    seed = request.seed if request.seed is not None else defaults["seed"]
    split = split_table(session.current_table, test_fraction, seed)
    store.set_split(request.session_id, split)
    logger.info(
        "session %s split into %d train / %d test rows (seed %d)",
        request.session_id,
        len(split.train),
        len(split.test),
        split.seed,
    )
    return {
        **split.summary(),
        "trainPreview": split.train.head(limits["preview_rows"]),
        "testPreview": split.test.head(limits["preview_rows"]),
    }


def _check_columns(request: TrainRequest) -> None:
    if request.target_column in request.feature_columns:
        raise ConfigurationError(
            f"Target column '{request.target_column}' cannot also be a feature",
            code="TARGET_IN_FEATURES",
            details={"column": request.target_column},
        )
    duplicates = sorted({name for name in request.feature_columns if request.feature_columns.count(name) > 1})
    if duplicates:
        raise ConfigurationError(
            f"Feature columns listed more than once: {', '.join(duplicates)}",
            code="DUPLICATE_FEATURES",
            details={"columns": duplicates},
        )


def run_train(
    store: SessionStore, request: TrainRequest, settings: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    session = store.get(request.session_id)
    split = session.split
    if split is None:
        raise ConfigurationError(
            "Data must be split before training",
            code="STAGE_ORDER",
            details={"stage": session.stage},
        )
    check_task_type(request.model_type, request.task_type)
    _check_columns(request)
    session.current_table.require_columns([*request.feature_columns, request.target_column])
    params = resolve_hyperparameters(request.hyperparameters.overrides(), hyperparameter_defaults(settings))

    features = list(request.feature_columns)
    train_set = extract_features(split.train, features, request.target_column, partition="train")
    test_set = extract_features(split.test, features, request.target_column, partition="test")

    started = time.perf_counter()
    model = fit(request.model_type, train_set.X, train_set.y, request.task_type, params)
    training_ms = (time.perf_counter() - started) * 1000

    predictor = predict if request.task_type == "regression" else predict_classes
    train_predictions = predictor(model, train_set.X)
    test_predictions = predictor(model, test_set.X)
    train_metrics = evaluate(request.task_type, train_set.y, train_predictions)
    test_metrics = evaluate(request.task_type, test_set.y, test_predictions)

    sample = [
        {"index": row_index, "actual": actual, "predicted": predicted}
        for row_index, actual, predicted in zip(split.test_indices, test_set.y, test_predictions)
    ][:PREDICTIONS_SAMPLE_SIZE]
    results = {
        "modelType": request.model_type,
        "taskType": request.task_type,
        "targetColumn": request.target_column,
        "featureColumns": features,
        "hyperparameters": params.to_dict(),
        "model": describe(model),
        "trainMetrics": train_metrics.to_dict(),
        "testMetrics": test_metrics.to_dict(),
        "featureImportance": [item.to_dict() for item in feature_importance(train_set.X, features)],
        "trainingTimeMs": round(training_ms, 2),
        "predictionsSample": sample,
        "coercedCells": {"train": train_set.coerced_cells, "test": test_set.coerced_cells},
    }
    store.set_trained_model(request.session_id, model, results)
    logger.info(
        "session %s trained %s (%s) in %.1f ms",
        request.session_id,
        request.model_type,
        request.task_type,
        training_ms,
    )
    return results


def run_results(store: SessionStore, session_id: str) -> dict[str, Any]:
    session = store.get(session_id)
    if session.model is None:
        raise ConfigurationError(
            "No model has been trained for this session",
            code="STAGE_ORDER",
            details={"stage": session.stage},
        )
    return dict(session.results)


def run_compare(ground_truth: bytes, predictions: Sequence[tuple[str, bytes]]) -> dict[str, Any]:
    """Score each named predictions CSV against the ground truth and rank them."""

    if not predictions:
        raise ConfigurationError("At least one predictions file is required", code="MISSING_PREDICTIONS")
    truth = load_csv_bytes(ground_truth)
    evaluations = [evaluate_predictions(truth, load_csv_bytes(data), name=name) for name, data in predictions]
    ranking = compare_models(evaluations)
    ranking["models"] = [evaluation.to_dict() for evaluation in evaluations]
    ranking["groundTruthRows"] = len(truth)
    return ranking


def session_config(settings: Mapping[str, Any] | None = None) -> dict[str, Any]:
    settings = settings or {}
    upload = settings.get("upload", {}) or {}
    return {
        "upload": {
            "max_mb": upload.get("max_mb", 10),
            "max_files": upload.get("max_files", 1),
        },
        "limits": limits_from_settings(settings),
        "defaults": defaults_from_settings(settings),
        "model_types": list(MODEL_TYPES),
        "task_types": list(TASK_TYPES),
    }


__all__ = [
    "dataset_load_from_bytes",
    "dataset_profile",
    "run_compare",
    "run_preprocess",
    "run_results",
    "run_split",
    "run_train",
    "session_config",
]
