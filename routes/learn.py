from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from db.database import get_db, utc_now
from models.review import ReviewSubmit, SrsRecord
from models.validation import parse_request
from utils.auth import require_user_token
from utils.logs import get_request_logger
from utils.progress import submit_review

router = APIRouter()


@router.post("/review/submit")
async def review_submit(
    payload: Dict[str, Any] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    review = parse_request(ReviewSubmit, payload)
    state = submit_review(conn, user_token, review, utc_now(), logger)
    record = SrsRecord(
        card_id=review.card_id,
        box=state.box,
        streak=state.streak,
        last_review_at=state.last_review_at,
        next_review_at=state.next_review_at,
        total_reviews=state.total_reviews,
        last_grade=state.last_grade,
    )
    return record.model_dump(by_alias=True, mode="json")
