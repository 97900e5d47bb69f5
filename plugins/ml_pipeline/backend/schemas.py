"""Request schema definitions for the ML pipeline backend."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from common.validation import SchemaModel

from ..core.preprocess import EncodingStep, MissingValueStep, PreprocessConfig, ScalingStep


class MissingValueConfig(SchemaModel):
    strategy: Literal["drop", "mean", "median", "mode", "constant"]
    columns: list[str] = Field(default_factory=list)
    fill_value: str | float | int | None = None


class EncodingConfig(SchemaModel):
    columns: list[str] = Field(min_length=1)
    method: Literal["label"] = "label"


class ScalingConfig(SchemaModel):
    method: Literal["standardize", "normalize"]
    columns: list[str] = Field(min_length=1)


class PreprocessRequest(SchemaModel):
    session_id: str
    missing_values: list[MissingValueConfig] = Field(default_factory=list)
    encoding: list[EncodingConfig] = Field(default_factory=list)
    scaling: list[ScalingConfig] = Field(default_factory=list)
    remove_columns: list[str] = Field(default_factory=list)

    def to_config(self) -> PreprocessConfig:
        return PreprocessConfig(
            missing_values=tuple(
                MissingValueStep(strategy=item.strategy, columns=tuple(item.columns), fill_value=item.fill_value)
                for item in self.missing_values
            ),
            encoding=tuple(EncodingStep(columns=tuple(item.columns), method=item.method) for item in self.encoding),
            scaling=tuple(ScalingStep(method=item.method, columns=tuple(item.columns)) for item in self.scaling),
            remove_columns=tuple(self.remove_columns),
        )


class SplitRequest(SchemaModel):
    session_id: str
    # Range is checked by the splitter so the error carries its own code.
    test_fraction: float | None = None
    seed: int | None = None


class HyperparameterConfig(SchemaModel):
    learning_rate: float | None = Field(default=None, gt=0, le=10)
    iterations: int | None = Field(default=None, ge=1, le=100_000)
    max_depth: int | None = Field(default=None, ge=1, le=50)
    min_samples: int | None = Field(default=None, ge=1, le=10_000)
    n_trees: int | None = Field(default=None, ge=1, le=500)
    bootstrap: bool | None = None
    seed: int | None = None
    n_jobs: int | None = Field(default=None, ge=1, le=32)

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TrainRequest(SchemaModel):
    session_id: str
    model_type: str
    task_type: str = "classification"
    target_column: str = Field(min_length=1)
    feature_columns: list[str] = Field(min_length=1)
    hyperparameters: HyperparameterConfig = Field(default_factory=HyperparameterConfig)


__all__ = [
    "EncodingConfig",
    "HyperparameterConfig",
    "MissingValueConfig",
    "PreprocessRequest",
    "ScalingConfig",
    "SplitRequest",
    "TrainRequest",
]
