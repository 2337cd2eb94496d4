"""
Practice sessions: list and save them, and the progress statistics derived
from them. Signed-in users keep sessions in the backend; anonymous visitors
keep them per device (X-Device-Id header).
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

import progress
import settings
from deps import optional_user, owner_key, session_store
from errors import DuplicateSubmission, NetworkError
from schemas import SaveSessionRequest, SessionRecord
from store import InFlight

router = APIRouter(prefix="/api", tags=["sessions"])

in_flight = InFlight()


def _load(store) -> list[SessionRecord]:
    try:
        return store.list()
    except NetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/sessions")
def list_sessions(limit: int = Query(20, ge=0), store=Depends(session_store)):
    """List recent sessions (newest first)."""
    return [r.model_dump(mode="json") for r in _load(store)[:limit]]


@router.post("/sessions", status_code=201)
def save_session(
    req: SaveSessionRequest,
    store=Depends(session_store),
    user: Optional[dict] = Depends(optional_user),
    device_id: Optional[str] = Header(default=None, alias="X-Device-Id"),
):
    """Save a finished session. `success` is worked out from the duration."""
    record = SessionRecord(date=datetime.now(timezone.utc), duration=req.duration)
    try:
        with in_flight.claim(owner_key(user, device_id)):
            store.append(record)
    except DuplicateSubmission as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return record.model_dump(mode="json")


# --- Stats ---


@router.get("/progress")
def get_progress(store=Depends(session_store)):
    """Streak, weekly goal, average duration, success rate and the last five sessions."""
    return progress.summarize(_load(store), tz=settings.TIMEZONE)
