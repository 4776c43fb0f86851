"""
Tests for access-token verification
"""
import time
from types import SimpleNamespace

import pytest
from jose import jwt

from gaytradies import auth
from gaytradies.errors import FailedPrecondition, Unauthenticated

SECRET = "test-jwt-secret-for-unit-tests-only"
ISSUER = "https://test-project.supabase.co/auth/v1"


def _token(secret=SECRET, **claims):
    body = {"sub": "user_1", "email": "dave@example.com", "iss": ISSUER, "exp": int(time.time()) + 3600}
    body.update(claims)
    return jwt.encode(body, secret, algorithm="HS256")


class TestVerifyToken:
    def test_hs256_token(self, db):
        caller = auth.verify_token(_token())
        assert caller.uid == "user_1"
        assert caller.email == "dave@example.com"
        assert caller.is_admin is False

    def test_admin_claim(self, db):
        caller = auth.verify_token(_token(app_metadata={"isAdmin": True}))
        assert caller.is_admin is True

    def test_wrong_secret(self, db):
        with pytest.raises(Unauthenticated):
            auth.verify_token(_token(secret="not-the-secret"))

    def test_expired_token(self, db):
        with pytest.raises(Unauthenticated):
            auth.verify_token(_token(exp=int(time.time()) - 10))

    def test_wrong_issuer(self, db):
        with pytest.raises(Unauthenticated):
            auth.verify_token(_token(iss="https://elsewhere.supabase.co/auth/v1"))

    def test_missing_subject(self, db):
        token = jwt.encode({"iss": ISSUER, "exp": int(time.time()) + 60}, SECRET, algorithm="HS256")
        with pytest.raises(Unauthenticated):
            auth.verify_token(token)

    def test_falls_back_to_supabase_without_secret(self, db, monkeypatch):
        monkeypatch.delenv("SUPABASE_JWT_SECRET")
        user = SimpleNamespace(id="user_7", email="sam@example.com", app_metadata={})
        db.auth.get_user.return_value = SimpleNamespace(user=user)

        caller = auth.verify_token(_token())

        assert caller.uid == "user_7"
        db.auth.get_user.assert_called_once()

    def test_missing_supabase_url_is_failed_precondition(self, db, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL")
        with pytest.raises(FailedPrecondition):
            auth.verify_token(_token())

    def test_supabase_rejection_is_unauthenticated(self, db):
        db.auth.get_user.side_effect = RuntimeError("invalid JWT")
        with pytest.raises(Unauthenticated):
            auth.verify_token("not-a-jwt")


class TestCallerDependency:
    def test_missing_header(self, client):
        response = client.get("/stripe/subscription/status")
        assert response.status_code == 401
        assert response.json()["detail"]["kind"] == "unauthenticated"

    def test_bearer_token(self, client, db):
        db.tables["profiles"] = [{"id": "user_1", "is_elite": True, "elite_status": "active"}]

        response = client.get("/stripe/subscription/status", headers={"Authorization": f"Bearer {_token()}"})

        assert response.status_code == 200
        assert response.json()["isElite"] is True

    def test_misconfigured_auth_is_not_a_401(self, client, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL")

        response = client.get("/stripe/subscription/status", headers={"Authorization": f"Bearer {_token()}"})

        assert response.status_code == 500
        assert response.json()["detail"]["kind"] == "failed-precondition"
