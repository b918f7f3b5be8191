from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import shared.config.settings as settings_module
from shared.config.settings import ApplicationSettings, Environment, StorageSettings

from mirror import main as mirror_main
from mirror.routers.mirror_router import XLSX_MEDIA_TYPE

LEARN_URL = "/api/v1/mirror/templates/learn"
CONFIRM_URL = "/api/v1/mirror/templates/confirm"
APPLY_URL = "/api/v1/mirror/templates/apply"


def _settings(tmp_path, **kwargs) -> ApplicationSettings:
    return ApplicationSettings(
        storage=StorageSettings(
            output_dir=str(tmp_path / "outputs"),
            upload_dir=str(tmp_path / "uploads"),
            definitions_db_path=str(tmp_path / "mirror.db"),
        ),
        **kwargs,
    )


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings_module, "settings", _settings(tmp_path))
    with TestClient(mirror_main.app) as test_client:
        yield test_client


def _upload(client: TestClient, data: bytes, name: str = "form.xlsx"):
    return client.post(LEARN_URL, files={"file": (name, data, XLSX_MEDIA_TYPE)})


@pytest.mark.asyncio
async def test_mirror_root_and_health() -> None:
    root = await mirror_main.root()
    assert root["service"] == "mirror"
    assert root["status"] == "running"

    health = await mirror_main.health_check()
    assert health["status"] == "success"
    assert health["data"]["status"] == "healthy"


def test_full_round_trip_over_http(client, tmp_path, workbook_bytes) -> None:
    learned = _upload(client, workbook_bytes({(0, 0): "Client Name", (0, 1): "Acme"}))
    assert learned.status_code == 200
    body = learned.json()
    assert body["detectedLabels"] == ["Client Name"]
    draft = body["draftSchema"]
    assert draft["fields"][0]["key"] == "client_name"
    assert "gridHash" in draft["fingerprint"]
    assert list((tmp_path / "uploads").iterdir()) == []

    draft["id"] = "t1"
    confirmed = client.post(CONFIRM_URL, json=draft)
    assert confirmed.status_code == 200
    assert confirmed.json() == {"ok": True, "id": "t1"}

    applied = client.post(APPLY_URL, json={"id": "t1", "values": {"client_name": "Globex"}})
    assert applied.status_code == 200
    result = applied.json()
    assert result["ok"] is True
    assert result["warnings"] == []

    downloaded = client.get(result["downloadPath"])
    assert downloaded.status_code == 200
    assert downloaded.headers["content-type"] == XLSX_MEDIA_TYPE
    assert downloaded.content[:2] == b"PK"


def test_learn_rejects_other_file_types(client) -> None:
    response = client.post(LEARN_URL, files={"file": ("notes.csv", b"a,b", "text/csv")})

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "validation_error"


def test_learn_rejects_empty_upload(client) -> None:
    response = client.post(LEARN_URL, files={"file": ("form.xlsx", b"", XLSX_MEDIA_TYPE)})

    assert response.status_code == 400


def test_corrupt_workbook_is_a_learn_failure(client, tmp_path) -> None:
    response = client.post(LEARN_URL, files={"file": ("form.xlsx", b"garbage", XLSX_MEDIA_TYPE)})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "LEARN_FAILURE"
    assert error["type"] == "learn_failure"
    assert "detail" in error["details"]
    assert list((tmp_path / "uploads").iterdir()) == []


def test_confirm_without_id_is_a_validation_failure(client) -> None:
    response = client.post(CONFIRM_URL, json={"clientKey": "Acme-v1", "fields": []})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_FAILURE"
    assert error["path"] == CONFIRM_URL
    assert response.headers["X-Request-ID"] == error["request_id"]


def test_apply_unknown_template_is_not_found(client) -> None:
    response = client.post(APPLY_URL, json={"id": "missing", "values": {}})

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_download_rejects_path_tricks(client) -> None:
    response = client.get("/api/v1/mirror/templates/download/..%5Cmirror.db")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_FAILURE"


def test_download_missing_file(client) -> None:
    response = client.get("/api/v1/mirror/templates/download/absent.xlsx")

    assert response.status_code == 404


def test_details_hidden_in_production(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(settings_module, "settings", _settings(tmp_path, environment=Environment.PRODUCTION))

    with TestClient(mirror_main.app) as client:
        response = client.post(LEARN_URL, files={"file": ("form.xlsx", b"garbage", XLSX_MEDIA_TYPE)})

    assert response.status_code == 422
    assert "details" not in response.json()["error"]
