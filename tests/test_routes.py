
import json
import cv2
import pytest
from fastapi.testclient import TestClient

import facelab.live as live
from api.main import app
from conftest import image, one_hot
from facelab.app import FaceLab
from facelab.live import LiveCapture


@pytest.fixture
def client(monkeypatch, settings, fake_deepface):
    lab = FaceLab(settings)
    monkeypatch.setattr(app.state, "facelab", lab)
    monkeypatch.setattr(app.state, "live", LiveCapture(lab))
    return TestClient(app)


def _png(value):
    ok, buf = cv2.imencode(".png", image(value))
    assert ok
    return buf.tobytes()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}

def test_register_requires_models(client):
    r = client.post("/db/register", data={"name": "Alice"}, files=[("files", ("a.png", _png(7), "image/png"))])
    assert r.status_code == 409

def test_register_and_summary(client):
    assert client.post("/models/load").json() == {"status": "loaded"}
    r = client.post(
        "/db/register",
        data={"name": "Alice"},
        files=[("files", ("a.png", _png(7), "image/png")), ("files", ("b.png", _png(0), "image/png"))],
    )
    assert r.status_code == 200
    assert r.json() == {"name": "Alice", "registered": 1, "skipped": ["b.png"]}
    assert client.get("/db").json() == {"count": 1, "identities": {"Alice": 1}}

def test_register_errors(client):
    client.post("/models/load")
    r = client.post("/db/register", data={"name": "Alice"}, files=[("files", ("b.png", _png(0), "image/png"))])
    assert r.status_code == 422
    r = client.post("/db/register", data={"name": "  "}, files=[("files", ("a.png", _png(7), "image/png"))])
    assert r.status_code == 400
    assert client.get("/db").json()["count"] == 0

def test_models_load_failure(client, fake_deepface):
    fake_deepface.build_error = OSError("no weights")
    r = client.post("/models/load")
    assert r.status_code == 503

def test_export_import(client):
    doc = {"Alice": [one_hot(1)], "Bob": [one_hot(2), one_hot(3)]}
    r = client.post("/db/import", files={"file": ("facelab_db.json", json.dumps(doc).encode(), "application/json")})
    assert r.status_code == 200
    assert r.json()["identities"] == {"Alice": 1, "Bob": 2}

    r = client.get("/db/export")
    assert r.status_code == 200
    assert 'filename="facelab_db.json"' in r.headers["content-disposition"]
    assert r.json() == doc

def test_import_invalid(client):
    r = client.post("/db/import", files={"file": ("x.json", b"{nope", "application/json")})
    assert r.status_code == 400
    r = client.post("/db/import", files={"file": ("x.json", json.dumps({"Alice": [[1, 2]]}).encode(), "application/json")})
    assert r.status_code == 400
    assert client.get("/db").json()["count"] == 0

def test_clear_requires_confirmation(client):
    client.post("/db/import", files={"file": ("x.json", json.dumps({"Alice": [one_hot(1)]}).encode(), "application/json")})
    assert client.delete("/db").status_code == 400
    assert client.get("/db").json()["count"] == 1
    r = client.delete("/db", params={"confirm": "true"})
    assert r.json() == {"status": "cleared"}
    assert client.get("/db").json()["count"] == 0

def test_detection_options(client):
    assert client.get("/detection/options").json()["variant"] in ("tiny", "ssd")
    r = client.put("/detection/options", json={"variant": "ssd", "input_size": "abc", "score_threshold": "0.7"})
    assert r.json() == {"variant": "ssd", "input_size": 320, "score_threshold": 0.7}
    assert client.get("/detection/options").json()["variant"] == "ssd"

def test_live_camera_denied(client, monkeypatch):
    class ClosedCap:
        def isOpened(self): return False
        def release(self): pass
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: ClosedCap())
    r = client.post("/live/start")
    assert r.status_code == 503

def test_live_status_stop_frame(client):
    body = client.get("/live/status").json()
    assert body["running"] is False
    assert isinstance(body["models_loaded"], bool)
    assert client.post("/live/stop").json() == {"status": "not_running"}
    assert client.get("/live/frame").status_code == 404
