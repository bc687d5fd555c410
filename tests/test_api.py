import inspect

import pytest
import requests
from fastapi.testclient import TestClient

from apps.inference_api import deps, routes
from apps.inference_api.main import create_app
from conftest import CountingResources, FakeModelStore, FakeRuntime

CONFIG = """
minio:
  enabled: false
records:
  backend: memory
models:
  cache_dir: data/models
"""


@pytest.fixture
def client(tmp_path, monkeypatch):
    cfg = tmp_path / "inference.yaml"
    cfg.write_text(CONFIG, encoding="utf-8")
    deps.init(cfg, tmp_path)

    monkeypatch.setattr(deps, "_STORE", FakeModelStore(tmp_path / "blobs"))
    monkeypatch.setattr(deps, "_RESOURCES", CountingResources())
    deps._RUNTIMES["ds1"] = FakeRuntime(detections=[
        {"label": "cat", "confidence": 0.92},
        {"label": "dog", "confidence": 0.10},
        {"label": None, "confidence": 0.5},
    ])

    records = deps.get_records()
    records.add("datasets", {"automl_id": "ds1", "name": "Pets", "owner_id": "u1"})
    records.add("datasets", {"automl_id": "ds2", "name": "Birds", "is_public": True})
    records.add("datasets", {"automl_id": "ds3", "name": "Hidden", "owner_id": "u9"})
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    records.add("operations", {"name": "op", "dataset_id": "ds2", "done": False})

    yield TestClient(create_app())
    deps.shutdown()


def test_healthz_reports_disabled_minio(client):
    body = client.get("/healthz").json()
    assert body["minio"] == "disabled"
    assert body["records"] == "ok"
    assert body["status"] == "degraded"


def test_list_datasets_with_status(client):
    items = client.get("/v1/datasets", params={"user_id": "u1"}).json()["items"]
    assert [i["automl_id"] for i in items] == ["ds1", "ds2"]
    assert items[0]["sharing"] == "Private"
    assert items[0]["status"]["model_exists"] is True
    assert items[1]["status"]["status_text"] == "Training under progress"


def test_model_status_route(client):
    body = client.get("/v1/datasets/ds3/model-status").json()
    assert body == {
        "automl_id": "ds3", "model_exists": False, "status_text": "No model available",
        "training_in_progress": False, "last_trained_ms": None, "latest_model": None,
    }


def test_infer_returns_ranked_inferences(client, red_png):
    r = client.post("/v1/datasets/ds1/infer", files={"image": ("red.png", red_png, "image/png")})
    assert r.status_code == 200
    body = r.json()
    assert body["display"] == ["CAT 0.920", "DOG 0.100"]
    assert body["model"] == {"name": "m1", "generated_at": 1000}
    assert body["state"] == "idle"
    assert body["transitions"][-2:] == ["showing_results", "idle"]


def test_infer_without_model_is_404(client, red_png):
    r = client.post("/v1/datasets/ds2/infer", files={"image": ("red.png", red_png, "image/png")})
    assert r.status_code == 404


def test_infer_with_bad_image_is_400(client):
    r = client.post("/v1/datasets/ds1/infer", files={"image": ("x.png", b"garbage", "image/png")})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Error running inference")


def test_infer_download_failure_without_model_is_503(client, tmp_path, monkeypatch, red_png):
    monkeypatch.setattr(deps, "_STORE", FakeModelStore(tmp_path, fail_with=ConnectionError("offline")))
    r = client.post("/v1/datasets/ds1/infer", files={"image": ("red.png", red_png, "image/png")})
    assert r.status_code == 503


def test_infer_with_unreachable_record_store_is_503(client, monkeypatch, red_png):
    def down(*args, **kwargs):
        raise requests.ConnectionError("clickhouse down")

    monkeypatch.setattr(deps.get_records(), "query", down)
    r = client.post("/v1/datasets/ds1/infer", files={"image": ("red.png", red_png, "image/png")})
    assert r.status_code == 503
    assert "clickhouse down" in r.json()["detail"]


def test_list_datasets_tolerates_malformed_model_row(client):
    deps.get_records().add("models", {"name": "broken", "dataset_id": "ds2"})
    r = client.get("/v1/datasets", params={"user_id": "u1"})
    assert r.status_code == 200
    by_id = {i["automl_id"]: i for i in r.json()["items"]}
    assert by_id["ds2"]["status"]["model_exists"] is False


def test_store_backed_routes_run_in_threadpool():
    for handler in (routes.healthz, routes.list_datasets, routes.dataset_model_status, routes.infer):
        assert not inspect.iscoroutinefunction(handler)


def test_lifespan_initialises_from_env(tmp_path, monkeypatch):
    cfg = tmp_path / "inference.yaml"
    cfg.write_text(CONFIG, encoding="utf-8")
    monkeypatch.setenv("AML_INFER_CONFIG", str(cfg))
    monkeypatch.setenv("AML_PROJECT_ROOT", str(tmp_path))

    with TestClient(create_app()) as c:
        assert deps.get_config()["records"]["backend"] == "memory"
        assert c.get("/healthz").json()["minio"] == "disabled"
