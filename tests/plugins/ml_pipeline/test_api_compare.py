import io

from app import create_app

API = "/api/ml_pipeline"

GROUND_TRUTH = b"id,actual\n1,spam\n2,ham\n3,spam\n4,ham\n5,spam\n"


def _make_client():
    app = create_app("TestingConfig")
    return app.test_client()


def _file(payload: bytes, name: str):
    return (io.BytesIO(payload), name)


def test_compare_ranks_models_by_f1():
    client = _make_client()
    response = client.post(
        f"{API}/compare",
        data={
            "ground_truth": _file(GROUND_TRUTH, "truth.csv"),
            "predictions": [
                _file(b"id,predicted\n1,ham\n2,ham\n3,ham\n4,ham\n5,ham\n", "lazy.csv"),
                _file(b"id,predicted,probability\n1,spam,0.9\n2,ham,0.2\n3,spam,0.8\n4,spam,0.6\n5,spam,0.7\n", "good.csv"),
            ],
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert [row["modelName"] for row in data["comparison"]] == ["good", "lazy"]
    assert data["comparison"][0]["rank"] == 1
    assert data["comparison"][0]["accuracy"] == 0.8
    assert data["bestModel"]["modelName"] == "good"
    assert data["groundTruthRows"] == 5
    assert [model["modelName"] for model in data["models"]] == ["lazy", "good"]


def test_model_names_override_file_names():
    client = _make_client()
    response = client.post(
        f"{API}/compare",
        data={
            "ground_truth": _file(GROUND_TRUTH, "truth.csv"),
            "predictions": [_file(b"id,predicted\n1,spam\n9,ham\n", "a.csv")],
            "model_names": ["baseline"],
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    model = response.get_json()["data"]["models"][0]
    assert model["modelName"] == "baseline"
    assert model["mismatches"] == ["9"]
    assert model["metrics"]["totalSamples"] == 1


def test_compare_requires_both_uploads():
    client = _make_client()
    response = client.post(
        f"{API}/compare",
        data={"predictions": [_file(b"id,predicted\n1,a\n", "p.csv")]},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "ml_pipeline.ground_truth.missing"

    response = client.post(
        f"{API}/compare",
        data={"ground_truth": _file(GROUND_TRUTH, "truth.csv")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "ml_pipeline.predictions.missing"


def test_invalid_ground_truth_is_reported():
    client = _make_client()
    response = client.post(
        f"{API}/compare",
        data={
            "ground_truth": _file(b"id,label\n1,a\n2,b\n", "truth.csv"),
            "predictions": [_file(b"id,predicted\n1,a\n", "p.csv")],
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    error = response.get_json()["error"]
    assert error["code"] == "ml_pipeline.missing_columns"
    assert "actual" in error["message"]


def test_disjoint_ids_are_rejected():
    client = _make_client()
    response = client.post(
        f"{API}/compare",
        data={
            "ground_truth": _file(GROUND_TRUTH, "truth.csv"),
            "predictions": [_file(b"id,predicted\n10,spam\n11,ham\n", "p.csv")],
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "ml_pipeline.no_aligned_predictions"
