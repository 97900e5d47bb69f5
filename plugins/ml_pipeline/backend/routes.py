"""Flask routes for the ML pipeline plugin."""

from __future__ import annotations

from pathlib import PurePath
from typing import Any, Callable

from flask import Blueprint, Response, current_app, request
from werkzeug.datastructures import FileStorage

from common.errors import (
    AppError,
    ComputationAppError,
    NotFoundAppError,
    ValidationAppError,
    ensure_app_error,
)
from common.logging import get_logger
from common.responses import fail, ok
from common.validation import (
    FileLimit,
    ValidationError,
    enforce_limits,
    parse_model,
    validate_csv_upload,
    validate_table_upload,
)

from ..core.errors import EvaluationError, NumericalError, PipelineError
from .schemas import PreprocessRequest, SplitRequest, TrainRequest
from .services import (
    dataset_load_from_bytes,
    dataset_profile,
    run_compare,
    run_preprocess,
    run_results,
    run_split,
    run_train,
    session_config,
)
from .utils import SessionNotFoundError, SessionStore, store_from_settings

bp = Blueprint("ml_pipeline", __name__, url_prefix="/api/ml_pipeline")

logger = get_logger("ml_pipeline.routes")

STORE_KEY = "ml_pipeline.store"


def _settings() -> dict[str, Any]:
    return current_app.config.get("PLUGIN_SETTINGS", {}).get("ml_pipeline", {}) or {}


@bp.record_once
def _install_store(state) -> None:
    settings = state.app.config.get("PLUGIN_SETTINGS", {}).get("ml_pipeline", {}) or {}
    state.app.extensions.setdefault(STORE_KEY, store_from_settings(settings))


def _store() -> SessionStore:
    return current_app.extensions[STORE_KEY]


def _upload_limits(section: str = "upload", *, default_max_files: int = 1) -> FileLimit:
    return FileLimit.from_settings(_settings().get(section), default_max_files=default_max_files, default_max_mb=10)


def _pipeline_error(exc: PipelineError) -> AppError:
    code = f"ml_pipeline.{exc.code.lower()}"
    details = {"category": exc.category, **exc.details}
    if isinstance(exc, (NumericalError, EvaluationError)):
        return ComputationAppError(message=exc.message, code=code, details=details)
    return ValidationAppError(message=exc.message, code=code, details=details)


def _handle(callable_: Callable[[], Response | tuple[Any, int] | dict[str, Any]]) -> Response:
    try:
        result = callable_()
        if isinstance(result, tuple):
            payload, status = result
            return ok(payload, status=status)
        if isinstance(result, Response):
            return result
        return ok(result)
    except AppError as exc:
        return fail(exc)
    except SessionNotFoundError as exc:
        return fail(NotFoundAppError(message=str(exc), code="ml_pipeline.session_not_found", details={"session_id": exc.session_id}))
    except PipelineError as exc:
        logger.info("pipeline request rejected: %s (%s)", exc.message, exc.code)
        return fail(_pipeline_error(exc))
    except ValidationError as exc:
        return fail(ValidationAppError(message=str(exc), code="ml_pipeline.invalid_request", details=exc.details))
    except Exception as exc:  # pragma: no cover - defensive path
        logger.exception("unhandled error in ml_pipeline route")
        error = ensure_app_error(exc, fallback_code="ml_pipeline.internal")
        return fail(error, status=error.status_code)


def _check_uploads(files: list[FileStorage], limit: FileLimit, *, spreadsheets: bool = False) -> None:
    try:
        enforce_limits(files, limit)
        if spreadsheets:
            validate_table_upload(files)
        else:
            validate_csv_upload(files)
    except ValidationError as exc:
        raise ValidationAppError(message=str(exc), code="ml_pipeline.upload.invalid", details=exc.details)


@bp.post("/datasets/load")
def datasets_load() -> Response:
    def _load() -> dict[str, Any]:
        file = request.files.get("csv")
        if not file:
            raise ValidationAppError(message="CSV or Excel upload required", code="ml_pipeline.dataset.missing")
        _check_uploads([file], _upload_limits(), spreadsheets=True)
        return dataset_load_from_bytes(_store(), file.read(), _settings(), file.filename)

    return _handle(_load)


@bp.get("/datasets/<session_id>/profile")
def datasets_profile(session_id: str) -> Response:
    return _handle(lambda: dataset_profile(_store(), session_id))


@bp.post("/preprocess")
def preprocess() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(PreprocessRequest, request.get_json(silent=True))
        return run_preprocess(_store(), payload, _settings())

    return _handle(_call)


@bp.post("/split")
def split() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(SplitRequest, request.get_json(silent=True))
        return run_split(_store(), payload, _settings())

    return _handle(_call)


@bp.post("/train")
def train() -> Response:
    def _call() -> dict[str, Any]:
        payload = parse_model(TrainRequest, request.get_json(silent=True))
        return run_train(_store(), payload, _settings())

    return _handle(_call)


@bp.get("/results/<session_id>")
def results(session_id: str) -> Response:
    return _handle(lambda: run_results(_store(), session_id))


@bp.post("/compare")
def compare() -> Response:
    def _call() -> dict[str, Any]:
        truth = request.files.get("ground_truth")
        if not truth:
            raise ValidationAppError(message="Ground truth CSV upload required", code="ml_pipeline.ground_truth.missing")
        predictions = request.files.getlist("predictions")
        if not predictions:
            raise ValidationAppError(message="At least one predictions CSV is required", code="ml_pipeline.predictions.missing")
        _check_uploads([truth], _upload_limits())
        _check_uploads(predictions, _upload_limits("compare_upload", default_max_files=10))

        names = request.form.getlist("model_names")
        named = []
        for index, file in enumerate(predictions):
            name = names[index] if index < len(names) and names[index].strip() else None
            name = name or PurePath(file.filename or f"model_{index + 1}").stem
            named.append((name, file.read()))
        return run_compare(truth.read(), named)

    return _handle(_call)


@bp.get("/system/config")
def system_config() -> Response:
    return _handle(lambda: session_config(_settings()))


__all__ = ["STORE_KEY", "bp"]
