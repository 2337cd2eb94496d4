"""
Intake questionnaire: step definitions and one-shot submission.
"""
import logging
from contextlib import nullcontext
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from db import get_backend
from deps import optional_user, owner_key
from errors import DuplicateSubmission, NetworkError
from schemas import QUIZ_STEPS, QuizSubmission
from store import InFlight, SqlBackend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quiz", tags=["quiz"])

in_flight = InFlight()


@router.get("/steps")
def quiz_steps():
    return {"total_steps": len(QUIZ_STEPS), "steps": QUIZ_STEPS}


@router.post("", status_code=201)
def submit_quiz(
    req: QuizSubmission,
    user: Optional[dict] = Depends(optional_user),
    device_id: Optional[str] = Header(default=None, alias="X-Device-Id"),
    backend: SqlBackend = Depends(get_backend),
):
    """
    Store the answers. Anonymous submissions are accepted (user_id stays null);
    responses are never read back.
    """
    user_id = user["id"] if user else None
    guard = in_flight.claim(owner_key(user, device_id)) if (user or device_id) else nullcontext()
    try:
        with guard:
            row = backend.insert("quiz_responses", req.to_row(user_id))
    except DuplicateSubmission as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NetworkError:
        raise HTTPException(status_code=503, detail="Could not save your answers. Please try again.")
    logger.info("quiz response %s stored (user=%s)", row["id"], user_id)
    return {"id": row["id"], "message": "Thanks for sharing. Your answers help personalise the app."}
