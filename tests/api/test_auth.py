"""Bearer token validation on the progress endpoints."""

from __future__ import annotations

import jwt
import pytest
from fastapi.testclient import TestClient

from coursetrack.services import token_service
from tests.conftest import auth, build_course, enroll


def _progress_url() -> str:
    sample = build_course()
    enrollment = enroll(sample.course)
    return f"/v1/enrollments/{enrollment.id}/progress"


def test_missing_token_is_401(client: TestClient) -> None:
    resp = client.get(_progress_url())
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_garbage_token_is_401(client: TestClient) -> None:
    resp = client.get(_progress_url(), headers=auth("not-a-jwt"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


def test_expired_token_is_401(client: TestClient) -> None:
    token = token_service.create_access_token(sub="learner-1", ttl_minutes=-1)
    resp = client.get(_progress_url(), headers=auth(token))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_wrong_audience_is_rejected() -> None:
    token = token_service.create_access_token(sub="learner-1")
    claims = jwt.decode(token, options={"verify_signature": False})
    claims["aud"] = "some-other-service"
    forged = jwt.encode(claims, token_service._private_key, algorithm="ES256")
    with pytest.raises(jwt.InvalidAudienceError):
        token_service.decode_access_token(forged)


def test_default_role_is_user() -> None:
    token = token_service.create_access_token(sub="learner-1")
    claims = token_service.decode_access_token(token)
    assert claims["sub"] == "learner-1"
    assert claims["roles"] == ["user"]
