"""Pure-Python pipeline core: profile, preprocess, split, train and evaluate.

Nothing in this package imports Flask; the backend and the CLI are thin
callers around these functions.
"""

from .comparison import (
    ModelEvaluation,
    align_predictions,
    compare_models,
    evaluate_predictions,
    validate_ground_truth,
    validate_predictions,
)
from .errors import ConfigurationError, DataError, EvaluationError, NumericalError, PipelineError
from .metrics import (
    ClassificationMetrics,
    ConfusionMatrix,
    Evaluation,
    FeatureImportance,
    MulticlassMetrics,
    RegressionMetrics,
    binary_classification_metrics,
    classification_metrics,
    evaluate,
    feature_importance,
    multiclass_classification_metrics,
    regression_metrics,
)
from .models import (
    MODEL_TYPES,
    TASK_TYPES,
    Hyperparameters,
    Model,
    fit,
    predict,
    predict_classes,
    resolve_hyperparameters,
)
from .preprocess import (
    EncodingStep,
    MissingValueStep,
    PreprocessConfig,
    PreprocessResult,
    ScalingStep,
    TransformRecord,
    apply_transforms,
    replay,
)
from .profiler import ColumnProfile, profile_column, profile_table
from .splitter import Split, split_table
from .table import FeatureSet, Table, extract_features, load_csv_bytes, load_excel_bytes, load_table_bytes

__all__ = [
    "ClassificationMetrics",
    "ColumnProfile",
    "ConfigurationError",
    "ConfusionMatrix",
    "DataError",
    "EncodingStep",
    "Evaluation",
    "EvaluationError",
    "FeatureImportance",
    "FeatureSet",
    "Hyperparameters",
    "MODEL_TYPES",
    "MissingValueStep",
    "Model",
    "ModelEvaluation",
    "MulticlassMetrics",
    "NumericalError",
    "PipelineError",
    "PreprocessConfig",
    "PreprocessResult",
    "RegressionMetrics",
    "ScalingStep",
    "Split",
    "TASK_TYPES",
    "Table",
    "TransformRecord",
    "align_predictions",
    "apply_transforms",
    "binary_classification_metrics",
    "classification_metrics",
    "compare_models",
    "evaluate",
    "evaluate_predictions",
    "extract_features",
    "feature_importance",
    "fit",
    "load_csv_bytes",
    "load_excel_bytes",
    "load_table_bytes",
    "multiclass_classification_metrics",
    "predict",
    "predict_classes",
    "profile_column",
    "profile_table",
    "regression_metrics",
    "replay",
    "resolve_hyperparameters",
    "split_table",
    "validate_ground_truth",
    "validate_predictions",
]
