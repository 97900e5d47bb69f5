from app import create_app


def test_home_lists_plugins():
    app = create_app("TestingConfig")
    client = app.test_client()
    response = client.get("/")
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    titles = [item["title"] for item in body["data"]["plugins"]]
    assert "ML Pipeline Builder" in titles
    plugin = next(item for item in body["data"]["plugins"] if item["title"] == "ML Pipeline Builder")
    assert plugin["api"] == "/api/ml_pipeline"
    assert response.headers.get("Content-Security-Policy")
    assert response.headers.get("X-Request-ID")


def test_unknown_route_returns_json_error():
    client = create_app("TestingConfig").test_client()
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "not_found"
