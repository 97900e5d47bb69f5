"""Validation primitives for plugin APIs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Iterable, Mapping, TypeVar

import pydantic
from pydantic import BaseModel
from werkzeug.datastructures import FileStorage


class ValidationError(ValueError):
    """Raised when validation fails."""

    def __init__(self, message: str, *, details: Any | None = None):
        super().__init__(message)
        self.details = details


class SchemaModel(BaseModel):
    """Strict base model for request/response validation."""

    model_config = pydantic.ConfigDict(extra="forbid", str_strip_whitespace=True)


TModel = TypeVar("TModel", bound=SchemaModel)


def _describe_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    described = []
    for error in errors:
        described.append(
            {
                "field": ".".join(str(part) for part in error.get("loc", ())),
                "message": error.get("msg", ""),
                "type": error.get("type", ""),
            }
        )
    return described


def parse_model(model: type[TModel], payload: Mapping[str, Any] | None) -> TModel:
    payload = payload or {}
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        details = _describe_errors(exc.errors())
        first = details[0] if details else None
        message = "Invalid request payload"
        if first:
            message = f"Invalid request payload: {first['field'] or 'body'}: {first['message']}"
        raise ValidationError(message, details={"errors": details}) from exc


@dataclass(slots=True)
class FileLimit:
    max_files: int
    max_size: int

    @classmethod
    def from_settings(
        cls,
        settings: Mapping[str, Any] | None,
        *,
        default_max_files: int,
        default_max_mb: int,
    ) -> "FileLimit":
        """Build a limit from the ``upload`` block of ``config.yml``.

        Missing or malformed values fall back to the supplied defaults.
        """

        max_files = default_max_files
        max_mb = default_max_mb

        if settings:
            try:
                max_files = int(settings.get("max_files", default_max_files))
            except (TypeError, ValueError):
                max_files = default_max_files

            try:
                max_mb = int(float(settings.get("max_mb", default_max_mb)))
            except (TypeError, ValueError):
                max_mb = default_max_mb

        max_files = max(max_files, 1)
        max_mb = max(max_mb, 1)
        return cls(max_files=max_files, max_size=max_mb * 1024 * 1024)


def enforce_limits(files: Iterable[FileStorage], limit: FileLimit) -> None:
    files = list(files)
    if not files:
        raise ValidationError("At least one file is required")
    if len(files) > limit.max_files:
        raise ValidationError("Too many files uploaded")
    for file in files:
        file.seek(0, 2)
        size = file.tell()
        file.seek(0)
        if size > limit.max_size:
            raise ValidationError("File exceeds allowed size")


def _looks_like_csv(sample: bytes) -> bool:
    if not sample:
        return False
    try:
        text = sample.decode("utf-8")
    except UnicodeDecodeError:
        try:
            text = sample.decode("latin-1")
        except UnicodeDecodeError:
            return False
    return any(delim in text for delim in (",", ";", "\t")) and "\n" in text


def _sample(file: FileStorage, size: int = 1024) -> bytes:
    """Leading bytes of an upload; the stream position is restored."""

    stream = file.stream
    try:
        current = stream.tell()
    except (AttributeError, OSError):
        current = None

    try:
        stream.seek(0)
    except (AttributeError, OSError):
        pass

    sample = stream.read(size)
    if isinstance(sample, str):
        sample = sample.encode("utf-8", "ignore")

    try:
        stream.seek(current if current is not None else 0)
    except (AttributeError, OSError):
        pass
    return sample or b""


def validate_csv_upload(files: Iterable[FileStorage]) -> None:
    """Reject uploads whose leading bytes do not look like delimited text."""

    for file in files:
        if not _looks_like_csv(_sample(file)):
            raise ValidationError(f"File '{file.filename or 'upload'}' is not a CSV document")


# Workbook signatures: xlsx is a zip archive, xls an OLE2 compound file.
SPREADSHEET_SIGNATURES = {".xlsx": b"PK\x03\x04", ".xls": b"\xd0\xcf\x11\xe0"}


def validate_table_upload(files: Iterable[FileStorage]) -> None:
    """Accept CSV text or an Excel workbook whose signature matches its extension."""

    for file in files:
        name = file.filename or "upload"
        suffix = PurePath(name).suffix.lower()
        sample = _sample(file)
        if suffix in SPREADSHEET_SIGNATURES:
            if not sample.startswith(SPREADSHEET_SIGNATURES[suffix]):
                raise ValidationError(f"File '{name}' is not a valid {suffix} workbook")
        elif not _looks_like_csv(sample):
            raise ValidationError(f"File '{name}' is not a CSV or Excel document")


__all__ = [
    "ValidationError",
    "SchemaModel",
    "parse_model",
    "FileLimit",
    "enforce_limits",
    "validate_csv_upload",
    "validate_table_upload",
]
