"""
Accounts: sign up (with email confirmation), sign in, sign out, current user.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from db import get_backend
from deps import bearer_token, require_user
from errors import AuthError, NetworkError
from schemas import ConfirmRequest, Credentials, UserOut
from store import SqlBackend

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup")
def sign_up(req: Credentials, backend: SqlBackend = Depends(get_backend)):
    """Create an account. Until the email is confirmed the user cannot sign in."""
    try:
        result = backend.sign_up(req.email, req.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))
    message = (
        "Account created! Check your email to confirm it."
        if result["confirmation_required"]
        else "Account created!"
    )
    return {**result, "message": message}


@router.post("/confirm", response_model=UserOut)
def confirm(req: ConfirmRequest, backend: SqlBackend = Depends(get_backend)):
    try:
        return backend.confirm_email(req.token)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/signin")
def sign_in(req: Credentials, backend: SqlBackend = Depends(get_backend)):
    """Returns a bearer token for the Authorization header."""
    try:
        user, token = backend.sign_in(req.email, req.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except NetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"user": user, "access_token": token, "token_type": "bearer"}


@router.post("/signout")
def sign_out(
    token: Optional[str] = Depends(bearer_token),
    backend: SqlBackend = Depends(get_backend),
):
    if not token:
        raise HTTPException(status_code=401, detail="Not signed in")
    try:
        signed_out = backend.sign_out(token)
    except NetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"signed_out": signed_out}


@router.get("/me", response_model=UserOut)
def me(user: dict = Depends(require_user)):
    return user
