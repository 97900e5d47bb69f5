import pytest

from plugins.ml_pipeline.core.errors import ConfigurationError, DataError
from plugins.ml_pipeline.core.linear import LinearRegressionModel, LogisticRegressionModel
from plugins.ml_pipeline.core.metrics import evaluate
from plugins.ml_pipeline.core.models import (
    Hyperparameters,
    check_task_type,
    describe,
    fit,
    model_type_of,
    predict,
    predict_classes,
    resolve_hyperparameters,
)
from plugins.ml_pipeline.core.splitter import split_table
from plugins.ml_pipeline.core.table import Table, extract_features
from plugins.ml_pipeline.core.trees import DecisionTreeModel, RandomForestModel


def test_defaults_are_used_when_nothing_is_overridden():
    params = resolve_hyperparameters()
    assert params == Hyperparameters()
    assert params.to_dict()["n_trees"] == 10


def test_overrides_win_and_none_falls_through():
    params = resolve_hyperparameters({"max_depth": 3, "n_trees": None}, {"max_depth": 7, "n_trees": 4})
    assert params.max_depth == 3
    assert params.n_trees == 4
    assert isinstance(resolve_hyperparameters({"iterations": 50.0}).iterations, int)


@pytest.mark.parametrize(
    "overrides",
    [
        {"learning_rate": 0},
        {"learning_rate": -0.1},
        {"iterations": 0},
        {"max_depth": 2.5},
        {"n_trees": True},
        {"min_samples": "3"},
        {"seed": 1.5},
        {"bootstrap": "yes"},
        {"depth": 3},
    ],
)
def test_invalid_hyperparameters_are_rejected(overrides):
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_hyperparameters(overrides)
    assert excinfo.value.code == "INVALID_HYPERPARAMETER"


def test_task_type_checks():
    assert check_task_type("decision_tree", "regression") == "regression"
    with pytest.raises(ConfigurationError) as excinfo:
        check_task_type("linear_regression", "classification")
    assert excinfo.value.code == "MODEL_TASK_MISMATCH"
    with pytest.raises(ConfigurationError) as excinfo:
        check_task_type("logistic_regression", "clustering")
    assert excinfo.value.code == "UNKNOWN_TASK_TYPE"
    with pytest.raises(ConfigurationError) as excinfo:
        check_task_type("svm", "classification")
    assert excinfo.value.code == "UNKNOWN_MODEL_TYPE"


@pytest.mark.parametrize(
    ("model_type", "task_type", "expected"),
    [
        ("linear_regression", "regression", LinearRegressionModel),
        ("logistic_regression", "classification", LogisticRegressionModel),
        ("decision_tree", "classification", DecisionTreeModel),
        ("random_forest", "regression", RandomForestModel),
    ],
)
def test_fit_dispatches_on_model_type(model_type, task_type, expected):
    X = [[float(i), float(i % 4)] for i in range(12)]
    y = [0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 1, 1] if task_type == "classification" else [i * 1.5 + 2 for i in range(12)]
    model = fit(model_type, X, y, task_type, Hyperparameters(n_trees=3, iterations=200))
    assert isinstance(model, expected)
    assert model_type_of(model) == model_type
    assert len(predict(model, X)) == 12
    assert describe(model)["type"] == model_type
    assert describe(model)["nFeatures"] == 2


def test_predict_rejects_wrong_feature_width():
    model = fit("linear_regression", [[1.0], [2.0], [3.0]], [2.0, 4.0, 6.0], "regression")
    with pytest.raises(DataError) as excinfo:
        predict(model, [[1.0, 2.0]])
    assert excinfo.value.code == "SHAPE_MISMATCH"


def test_logistic_pipeline_on_one_hundred_rows():
    records = [{"x1": float(i % 10), "x2": float(i // 10), "label": 1 if i % 10 >= 5 else 0} for i in range(100)]
    split = split_table(Table.from_records(records), test_fraction=0.2, seed=42)
    train = extract_features(split.train, ["x1", "x2"], "label")
    test = extract_features(split.test, ["x1", "x2"], "label", partition="test")

    model = fit(
        "logistic_regression",
        train.X,
        train.y,
        "classification",
        resolve_hyperparameters({"learning_rate": 0.1, "iterations": 1000}),
    )
    probabilities = predict(model, test.X)
    assert all(0.0 <= p <= 1.0 for p in probabilities)
    classes = predict_classes(model, test.X)
    assert set(classes) <= {0.0, 1.0}

    result = evaluate("classification", test.y, classes)
    assert result.kind == "binary"
    counts = result.metrics.confusion_matrix
    assert counts.tp + counts.tn + counts.fp + counts.fn == 20
    assert result.metrics.accuracy >= 0.8
