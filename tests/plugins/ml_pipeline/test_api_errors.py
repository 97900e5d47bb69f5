import io

import pandas as pd

from app import create_app
from plugins.ml_pipeline.backend.routes import STORE_KEY
from plugins.ml_pipeline.backend.utils import SessionStore

API = "/api/ml_pipeline"


def _make_client(**settings):
    app = create_app("TestingConfig")
    app.config["PLUGIN_SETTINGS"]["ml_pipeline"] = {
        "upload": {"max_mb": 1, "max_files": 1},
        "max_rows": 50,
        "max_columns": 5,
        **settings,
    }
    return app, app.test_client()


def _upload(client, text: str, name: str = "data.csv"):
    return client.post(
        f"{API}/datasets/load",
        data={"csv": (io.BytesIO(text.encode()), name)},
        content_type="multipart/form-data",
    )


def _split_session(client, text: str) -> str:
    session_id = _upload(client, text).get_json()["data"]["session_id"]
    response = client.post(f"{API}/split", json={"session_id": session_id, "test_fraction": 0.25, "seed": 1})
    assert response.status_code == 200
    return session_id


def _train(client, session_id: str, **overrides):
    payload = {
        "session_id": session_id,
        "model_type": "logistic_regression",
        "target_column": "y",
        "feature_columns": ["x"],
    }
    payload.update(overrides)
    return client.post(f"{API}/train", json=payload)


def _error(response):
    body = response.get_json()
    assert body["success"] is False
    return body["error"]


def test_missing_upload_is_rejected():
    _, client = _make_client()
    response = client.post(f"{API}/datasets/load", data={}, content_type="multipart/form-data")
    assert response.status_code == 400
    assert _error(response)["code"] == "ml_pipeline.dataset.missing"


def test_non_csv_upload_is_rejected():
    _, client = _make_client()
    response = _upload(client, "just some words", "notes.txt")
    assert response.status_code == 400
    assert _error(response)["code"] == "ml_pipeline.upload.invalid"


def test_dataset_limits_are_enforced():
    _, client = _make_client()
    response = _upload(client, "a,b,c,d,e,f\n1,2,3,4,5,6\n")
    assert response.status_code == 400
    error = _error(response)
    assert error["code"] == "ml_pipeline.too_many_columns"
    assert "columns" in error["message"].lower()

    rows = "\n".join(f"{i},{i}" for i in range(51))
    response = _upload(client, "a,b\n" + rows + "\n")
    assert _error(response)["code"] == "ml_pipeline.too_many_rows"


def test_session_cap_is_enforced():
    app, client = _make_client()
    app.extensions[STORE_KEY] = SessionStore(max_sessions=1)
    assert _upload(client, "a,b\n1,2\n2,3\n").status_code == 200
    response = _upload(client, "a,b\n1,2\n2,3\n")
    assert response.status_code == 400
    assert "too many active sessions" in _error(response)["message"].lower()


def test_unknown_session_is_not_found():
    _, client = _make_client()
    response = client.get(f"{API}/datasets/nope/profile")
    assert response.status_code == 404
    error = _error(response)
    assert error["code"] == "ml_pipeline.session_not_found"
    assert error["message"] == "Session expired or not found"


def test_invalid_payload_is_a_schema_error():
    _, client = _make_client()
    response = client.post(f"{API}/preprocess", json={"session_id": "x", "scaling": [{"method": "zscore", "columns": ["a"]}]})
    assert response.status_code == 400
    assert _error(response)["code"] == "ml_pipeline.invalid_request"

    response = client.post(f"{API}/split", json={"session_id": "x", "unexpected": 1})
    assert _error(response)["code"] == "ml_pipeline.invalid_request"


def test_training_before_split_is_a_stage_error():
    _, client = _make_client()
    session_id = _upload(client, "x,y\n1,0\n2,1\n3,0\n4,1\n").get_json()["data"]["session_id"]
    response = _train(client, session_id)
    assert response.status_code == 400
    error = _error(response)
    assert error["code"] == "ml_pipeline.stage_order"
    assert error["details"]["category"] == "configuration"


def test_invalid_test_fraction():
    _, client = _make_client()
    session_id = _upload(client, "x,y\n1,0\n2,1\n").get_json()["data"]["session_id"]
    response = client.post(f"{API}/split", json={"session_id": session_id, "test_fraction": 1.5})
    assert response.status_code == 400
    assert _error(response)["code"] == "ml_pipeline.invalid_test_fraction"


def test_model_and_task_mismatch():
    _, client = _make_client()
    session_id = _split_session(client, "x,y\n1,0\n2,1\n3,0\n4,1\n5,0\n6,1\n7,0\n8,1\n")
    response = _train(client, session_id, model_type="linear_regression", task_type="classification")
    assert _error(response)["code"] == "ml_pipeline.model_task_mismatch"

    response = _train(client, session_id, model_type="svm")
    assert _error(response)["code"] == "ml_pipeline.unknown_model_type"

    response = _train(client, session_id, feature_columns=["x", "y"])
    assert _error(response)["code"] == "ml_pipeline.target_in_features"

    response = _train(client, session_id, feature_columns=["x", "missing"])
    assert _error(response)["code"] == "ml_pipeline.missing_columns"


def test_bad_targets_are_data_errors():
    _, client = _make_client()
    session_id = _split_session(client, "x,y\n1,1\n2,1\n3,1\n4,1\n5,1\n6,1\n7,1\n8,1\n")
    response = _train(client, session_id)
    assert response.status_code == 400
    error = _error(response)
    assert error["code"] == "ml_pipeline.single_class"
    assert error["details"]["category"] == "data"

    session_id = _split_session(client, "x,y\n1,0.5\n2,1.5\n3,2.5\n4,0.1\n5,3.3\n6,1.1\n7,0.2\n8,4.4\n")
    error = _error(_train(client, session_id, model_type="decision_tree"))
    assert error["code"] == "ml_pipeline.target_looks_continuous"
    assert "regression" in error["message"]


def test_singular_matrix_is_unprocessable():
    _, client = _make_client()
    session_id = _split_session(client, "x,y\n5,1\n5,2\n5,3\n5,4\n5,5\n5,6\n5,7\n5,8\n")
    response = _train(client, session_id, model_type="linear_regression", task_type="regression")
    assert response.status_code == 422
    error = _error(response)
    assert error["code"] == "ml_pipeline.singular_matrix"
    assert error["details"]["category"] == "numerical"


def test_out_of_range_hyperparameter():
    _, client = _make_client()
    session_id = _split_session(client, "x,y\n1,0\n2,1\n3,0\n4,1\n5,0\n6,1\n7,0\n8,1\n")
    response = _train(client, session_id, hyperparameters={"learning_rate": 0})
    assert response.status_code == 400
    assert _error(response)["code"] == "ml_pipeline.invalid_request"


def test_results_without_training():
    _, client = _make_client()
    session_id = _upload(client, "x,y\n1,0\n2,1\n").get_json()["data"]["session_id"]
    response = client.get(f"{API}/results/{session_id}")
    assert response.status_code == 400
    assert _error(response)["code"] == "ml_pipeline.stage_order"


def test_excel_upload_is_profiled():
    _, client = _make_client()
    buffer = io.BytesIO()
    pd.DataFrame({"x": [1.5, 2.5, None], "y": ["a", "b", "a"]}).to_excel(buffer, index=False)
    buffer.seek(0)
    response = client.post(
        f"{API}/datasets/load",
        data={"csv": (buffer, "data.xlsx")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["rows"] == 3
    columns = {column["name"]: column for column in data["columns"]}
    assert columns["x"]["type"] == "numeric"
    assert columns["x"]["missingCount"] == 1


def test_workbook_extension_must_match_its_content():
    _, client = _make_client()
    response = _upload(client, "a,b\n1,2\n", "data.xlsx")
    assert response.status_code == 400
    assert _error(response)["code"] == "ml_pipeline.upload.invalid"
