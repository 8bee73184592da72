"""
invoice_hub.auth.deps

FastAPI dependency functions for authentication.

Responsibilities:
- Convert a bearer token into a typed `Principal`.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.status import HTTP_401_UNAUTHORIZED

from invoice_hub.auth.jwt import JwtConfig, JwtValidationError, decode_and_validate
from invoice_hub.auth.models import Principal
from invoice_hub.settings import Settings, get_settings

_bearer = HTTPBearer(auto_error=False)


def _settings(request: Request) -> Settings:
    # Apps built with explicit settings (tests) stash them on app.state.
    return getattr(request.app.state, "settings", None) or get_settings()


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(_settings),
) -> Principal:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    try:
        payload = decode_and_validate(cfg=JwtConfig.from_settings(settings), token=creds.credentials)
    except JwtValidationError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}") from e

    subject = str(payload.get("sub", ""))
    roles_raw = payload.get("roles", [])
    if not subject:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    if not isinstance(roles_raw, list):
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token roles")

    return Principal(subject=subject, roles=frozenset(str(r) for r in roles_raw))


# --- Module Notes -----------------------------------------------------------
# The step from Principal to AccessContext needs a DB session, so it lives in
# `invoice_hub.api.deps.get_access_context`.
