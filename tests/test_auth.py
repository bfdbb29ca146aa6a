import jwt
import pytest

from sheet_service.auth import decode_user_id
from sheet_service.config import Settings
from sheet_service.errors import AuthError


def test_decodes_sub_without_secret(user_id, make_auth_headers):
    header = make_auth_headers(user_id)["Authorization"]
    assert decode_user_id(header, Settings(jwt_secret=None)) == user_id


def test_verifies_signature_when_secret_set(user_id, make_auth_headers):
    header = make_auth_headers(user_id)["Authorization"]
    assert decode_user_id(header, Settings(jwt_secret="test-secret")) == user_id
    with pytest.raises(AuthError):
        decode_user_id(header, Settings(jwt_secret="other-secret"))


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer not-a-jwt"])
def test_rejects_missing_or_malformed_header(header):
    with pytest.raises(AuthError):
        decode_user_id(header, Settings(jwt_secret=None))


def test_rejects_token_without_sub():
    token = jwt.encode({"name": "nobody"}, "test-secret", algorithm="HS256")
    with pytest.raises(AuthError):
        decode_user_id(f"Bearer {token}", Settings(jwt_secret=None))


def test_api_requires_token(client):
    response = client.get("/characters")
    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "unauthorized"
    assert body["message"] == "Unauthorized"
    assert response.headers["X-Request-Id"] == body["request_id"]


def test_api_hides_other_users_characters(client, character_id, make_auth_headers):
    response = client.get(f"/characters/{character_id}", headers=make_auth_headers("someone-else"))
    assert response.status_code == 404
