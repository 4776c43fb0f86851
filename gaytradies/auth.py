# gaytradies/auth.py
import time
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import get_settings
from .deps import get_supabase
from .errors import ApiError, FailedPrecondition, Unauthenticated

security = HTTPBearer(auto_error=False)
_cache: Dict[str, Any] = {"jwks": None, "fetched_at": 0.0}
JWKS_TTL_SECONDS = 600


class Caller(BaseModel):
    uid: str
    email: Optional[str] = None
    is_admin: bool = False


def _auth_base_url() -> str:
    url = get_settings().supabase_url
    if not url:
        raise FailedPrecondition("Auth is not configured")
    return f"{url.rstrip('/')}/auth/v1"


def _get_jwks() -> Dict[str, Any]:
    now = time.time()
    if not _cache["jwks"] or now - _cache["fetched_at"] > JWKS_TTL_SECONDS:
        headers = {}
        key = get_settings().supabase_service_role_key
        if key:
            headers = {"apikey": key}
        resp = httpx.get(f"{_auth_base_url()}/.well-known/jwks.json", headers=headers, timeout=10)
        resp.raise_for_status()
        _cache["jwks"] = resp.json()
        _cache["fetched_at"] = now
    return _cache["jwks"]


def _caller_from_claims(claims: Dict[str, Any]) -> Caller:
    sub = claims.get("sub")
    if not sub:
        raise Unauthenticated("Token missing subject (sub)")
    app_metadata = claims.get("app_metadata") or {}
    return Caller(
        uid=sub,
        email=claims.get("email"),
        is_admin=app_metadata.get("isAdmin") is True,
    )


def _fetch_caller_from_supabase(token: str) -> Caller:
    """Fallback: ask Supabase Auth who this token belongs to."""
    try:
        resp = get_supabase().auth.get_user(token)
    except ApiError:
        raise
    except Exception as e:
        raise Unauthenticated(f"Could not verify token with Supabase: {e}") from e
    user = resp.user if resp else None
    if not user or not user.id:
        raise Unauthenticated("User not found for token")
    app_metadata = user.app_metadata or {}
    return Caller(uid=user.id, email=user.email, is_admin=app_metadata.get("isAdmin") is True)


def verify_token(token: str) -> Caller:
    """
    Accepts Supabase access tokens signed with:
      - HS256 (JWT secret)      -> verify with SUPABASE_JWT_SECRET
      - RS256/ES256 (JWKS)      -> verify with the project's JWKS
    Falls back to Supabase Auth if neither applies.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        return _fetch_caller_from_supabase(token)
    alg = (header.get("alg") or "").upper()

    if alg == "HS256":
        secret = get_settings().supabase_jwt_secret
        if not secret:
            return _fetch_caller_from_supabase(token)
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=["HS256"],
                options={"verify_aud": False},
                issuer=_auth_base_url(),
            )
        except JWTError as e:
            raise Unauthenticated(f"Invalid token (HS256): {e}") from e
        return _caller_from_claims(claims)

    if alg in ("RS256", "ES256"):
        try:
            jwks = _get_jwks()
        except httpx.HTTPError as e:
            raise Unauthenticated(f"Could not fetch signing keys: {e}") from e
        kid = header.get("kid")
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            raise Unauthenticated("Signing key not found")
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[alg],
                options={"verify_aud": False},
                issuer=_auth_base_url(),
            )
        except JWTError as e:
            raise Unauthenticated(f"Invalid token ({alg}): {e}") from e
        return _caller_from_claims(claims)

    return _fetch_caller_from_supabase(token)


def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Caller:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthenticated("Missing bearer token")
    return verify_token(credentials.credentials)
