from datetime import datetime, timezone

from fastapi.testclient import TestClient

import app.api as api_module
from app.routes import requests_api

VALID = {
    "name": "Ana Pérez",
    "phone": "+56912345678",
    "email": "Ana@Example.com",
    "address": "Los Aromos 55, Maipú",
    "special_instructions": "Blue gate",
    "amount": "1000",
    "is_urgent": True,
}


def _stub_create(monkeypatch):
    captured = {}

    def _create(**kwargs):
        captured.update(kwargs)
        return {
            "id": 11,
            "tracking_token": "track-me",
            "status": "pending",
            "created_at": datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
        }

    monkeypatch.setattr(requests_api, "create_water_request", _create)
    return captured


def test_create_request_returns_envelope(monkeypatch):
    captured = _stub_create(monkeypatch)
    client = TestClient(api_module.app)

    resp = client.post("/api/requests", json=VALID)

    assert resp.status_code == 201
    body = resp.json()
    assert body["error"] is None
    assert body["data"] == {
        "id": 11,
        "tracking_token": "track-me",
        "status": "pending",
        "created_at": "2025-03-01T12:00:00+00:00",
    }
    assert captured["amount"] == 1000
    assert captured["guest_email"] == "ana@example.com"
    assert captured["is_urgent"] is True
    assert captured["consumer_id"] is None


def test_invalid_json_is_validation_error(monkeypatch):
    _stub_create(monkeypatch)
    client = TestClient(api_module.app)

    resp = client.post("/api/requests", content="not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    assert resp.json()["data"] is None


def test_bad_fields_are_rejected(monkeypatch):
    captured = _stub_create(monkeypatch)
    client = TestClient(api_module.app)

    for field, value in (("phone", "912345678"), ("amount", "250"), ("address", "abc"), ("email", "nope")):
        resp = client.post("/api/requests", json=dict(VALID, **{field: value}))
        assert resp.status_code == 400, field
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert field in error["message"]

    assert captured == {}


def test_database_failure_is_reported(monkeypatch):
    def _fail(**kwargs):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(requests_api, "create_water_request", _fail)
    client = TestClient(api_module.app)

    resp = client.post("/api/requests", json=VALID)

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "DATABASE_ERROR"


def test_health():
    client = TestClient(api_module.app)
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
