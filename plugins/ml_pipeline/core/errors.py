"""Error taxonomy for the pipeline core.

Every failure raised by the core is a :class:`PipelineError` carrying a
stable machine ``code``. The category tells the caller what to change:

* :class:`ConfigurationError` - the request itself (columns, fractions,
  model type, hyperparameter values).
* :class:`DataError` - the dataset (single-class target, empty partition).
* :class:`NumericalError` - the maths of one fit or transform (singular
  matrix); retry with different features or hyperparameters.
* :class:`EvaluationError` - metrics that cannot be reported honestly
  (all-zero confusion matrix).
"""

from __future__ import annotations

from typing import Any, Mapping


class PipelineError(ValueError):
    """Base class for all pipeline failures."""

    category = "pipeline"

    def __init__(self, message: str, *, code: str = "PIPELINE_ERROR", details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


class ConfigurationError(PipelineError):
    category = "configuration"


class DataError(PipelineError):
    category = "data"


class NumericalError(PipelineError):
    category = "numerical"


class EvaluationError(PipelineError):
    category = "evaluation"


__all__ = [
    "ConfigurationError",
    "DataError",
    "EvaluationError",
    "NumericalError",
    "PipelineError",
]
