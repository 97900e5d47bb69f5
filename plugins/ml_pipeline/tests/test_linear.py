import numpy as np
import pytest
from sklearn.linear_model import LinearRegression

from plugins.ml_pipeline.core.errors import DataError, NumericalError
from plugins.ml_pipeline.core.linear import (
    fit_linear_regression,
    fit_logistic_regression,
    invert,
    predict_linear_regression,
    predict_logistic_regression,
    sigmoid,
    to_classes,
)
from plugins.ml_pipeline.core.metrics import regression_metrics


def test_recovers_exact_linear_relationship():
    X = [[float(x)] for x in range(10)]
    y = [2 * x + 3 for x in range(10)]
    model = fit_linear_regression(X, y)
    assert model.intercept == pytest.approx(3.0)
    assert model.coefficients[0] == pytest.approx(2.0)
    metrics = regression_metrics(y, predict_linear_regression(model, X))
    assert metrics.r2 == pytest.approx(1.0)
    assert metrics.rmse == pytest.approx(0.0, abs=1e-9)


def test_matches_sklearn_on_noisy_data():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(60, 3))
    y = X @ np.array([1.5, -2.0, 0.5]) + 4.0 + rng.normal(scale=0.1, size=60)
    model = fit_linear_regression(X.tolist(), y.tolist())
    reference = LinearRegression().fit(X, y)
    assert model.intercept == pytest.approx(reference.intercept_, rel=1e-6)
    assert np.allclose(model.coefficients, reference.coef_, rtol=1e-6)


def test_invert_matches_known_inverse():
    inverse = invert([[4.0, 7.0], [2.0, 6.0]])
    assert np.allclose(inverse, [[0.6, -0.7], [-0.2, 0.4]])


def test_constant_feature_makes_the_system_singular():
    X = [[5.0], [5.0], [5.0], [5.0]]
    with pytest.raises(NumericalError) as excinfo:
        fit_linear_regression(X, [1.0, 2.0, 3.0, 4.0])
    assert excinfo.value.code == "SINGULAR_MATRIX"
    assert excinfo.value.category == "numerical"


def test_input_validation_happens_before_fitting():
    with pytest.raises(DataError) as excinfo:
        fit_linear_regression([[1.0], [2.0]], [1.0])
    assert excinfo.value.code == "SHAPE_MISMATCH"

    with pytest.raises(DataError) as excinfo:
        fit_linear_regression([], [])
    assert excinfo.value.code == "EMPTY_INPUT"

    with pytest.raises(DataError) as excinfo:
        fit_linear_regression([[1.0], ["a"]], [1.0, 2.0])
    assert excinfo.value.code == "NON_NUMERIC_INPUT"


def test_sigmoid_is_stable_at_extremes():
    assert sigmoid(1000) == 1.0
    assert sigmoid(-1000) == 0.0
    assert sigmoid(0) == 0.5


def test_logistic_regression_separates_symmetric_data():
    X = [[float(x)] for x in (-3, -2, -1, 1, 2, 3)]
    y = [0, 0, 0, 1, 1, 1]
    model = fit_logistic_regression(X, y, learning_rate=0.1, iterations=500)
    probabilities = predict_logistic_regression(model, X)
    assert all(0.0 <= p <= 1.0 for p in probabilities)
    assert to_classes(probabilities) == [0.0, 0.0, 0.0, 1.0, 1.0, 1.0]
    assert model.coefficients[0] > 0
    assert model.iterations == 500


@pytest.mark.parametrize(
    ("labels", "code"),
    [
        ([1, 1, 1, 1], "SINGLE_CLASS"),
        ([0, 1, 2, 1], "NON_BINARY_TARGET"),
        ([0.5, 1.2, 0.1, 3.3], "TARGET_LOOKS_CONTINUOUS"),
    ],
)
def test_logistic_regression_rejects_bad_targets(labels, code):
    X = [[1.0], [2.0], [3.0], [4.0]]
    with pytest.raises(DataError) as excinfo:
        fit_logistic_regression(X, labels)
    assert excinfo.value.code == code


def test_looks_like_regression_hint():
    with pytest.raises(DataError) as excinfo:
        fit_logistic_regression([[1.0], [2.0]], [0.25, 0.75])
    assert "looks like regression" in excinfo.value.message
