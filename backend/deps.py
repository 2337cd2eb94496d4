"""
Request dependencies shared by the routers: bearer token, current user,
and the session store that belongs to the caller.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException

from db import get_backend
from errors import NetworkError, ValidationError
from store import SqlBackend, active_store


def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Expected 'Authorization: Bearer <token>'")
    return token.strip()


def optional_user(
    token: Optional[str] = Depends(bearer_token),
    backend: SqlBackend = Depends(get_backend),
) -> Optional[dict]:
    """The signed-in user, None for anonymous callers. A stale token is an error."""
    if token is None:
        return None
    try:
        user = backend.current_user(token)
    except NetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user


def require_user(user: Optional[dict] = Depends(optional_user)) -> dict:
    if user is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return user


def owner_key(user: Optional[dict], device_id: Optional[str]) -> str:
    return f"user:{user['id']}" if user else f"device:{device_id}"


def session_store(
    user: Optional[dict] = Depends(optional_user),
    device_id: Optional[str] = Header(default=None, alias="X-Device-Id"),
    backend: SqlBackend = Depends(get_backend),
):
    try:
        return active_store(backend, user, device_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
