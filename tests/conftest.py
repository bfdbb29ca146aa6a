import jwt
import pytest

USER_ID = "3f1c9a52-7d1e-4c2b-9a8e-5b6f0d2e4a71"
OTHER_USER_ID = "8a2d4e61-0b3c-4f5a-8e7d-1c9b2a3f6e50"

START_ATTRIBUTES = {
    "courage": 5,
    "intelligence": 5,
    "concentration": 5,
    "charisma": 4,
    "mentalResilience": 4,
    "dexterity": 6,
    "endurance": 5,
    "strength": 5,
}


def bearer(user_id: str) -> dict:
    token = jwt.encode({"sub": user_id}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(params=["file", "sqlite"])
def repo_root(tmp_path, monkeypatch, request):
    backend_name = request.param
    db_path = tmp_path / "sheets.sqlite"

    monkeypatch.setenv("SHEET_SERVICE_REPO_ROOT", str(tmp_path))
    monkeypatch.setenv("SHEET_SERVICE_DATA_DIR", "data")
    monkeypatch.delenv("SHEET_SERVICE_JWT_SECRET", raising=False)
    monkeypatch.setenv("STORAGE_BACKEND", backend_name)
    if backend_name == "sqlite":
        monkeypatch.setenv("DATABASE_URL", str(db_path))
    else:
        monkeypatch.delenv("DATABASE_URL", raising=False)

    from sheet_service.config import get_settings

    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture()
def client(repo_root):
    from fastapi.testclient import TestClient
    from sheet_service.app import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers():
    return bearer(USER_ID)


@pytest.fixture()
def create_payload():
    return {
        "name": "Aldric",
        "attributes": dict(START_ATTRIBUTES),
        "activatedSkills": ["knowledge/history"],
        "specialAbilities": ["Night Vision"],
    }


@pytest.fixture()
def character_id(client, auth_headers, create_payload):
    response = client.post("/characters", json=create_payload, headers=auth_headers)
    assert response.status_code == 201
    return response.json()["data"]["characterId"]


@pytest.fixture()
def grant_adventure_points(client, auth_headers, character_id):
    def _grant(points: int) -> None:
        sheet = client.get(f"/characters/{character_id}", headers=auth_headers).json()["characterSheet"]
        total = int(sheet["calculationPoints"]["adventurePoints"]["total"])
        payload = {"adventurePoints": {"total": {"initialValue": total, "increasedPoints": points}}}
        response = client.patch(f"/characters/{character_id}/calculation-points", json=payload, headers=auth_headers)
        assert response.status_code == 200

    return _grant


@pytest.fixture()
def user_id():
    return USER_ID


@pytest.fixture()
def make_auth_headers():
    return bearer
