from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from config import load_config
from db.database import get_db, utc_now
from models.exam import AnswerExamRequest, ExamListRequest, StartExamRequest
from models.validation import parse_request
from utils.auth import require_user_token
from utils.exam import answer_exam, cancel_exam, get_exam, list_exams, start_exam, submit_exam
from utils.logs import get_request_logger

router = APIRouter()


@router.post("/start", status_code=status.HTTP_201_CREATED)
async def start(
    payload: Dict[str, Any] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    request = parse_request(StartExamRequest, payload)
    result = start_exam(conn, user_token, request, utc_now(), logger)
    return result.model_dump(by_alias=True, mode="json")


@router.post("/list")
async def list_sessions(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    request = parse_request(ExamListRequest, payload or {})
    min_page_size = load_config()["exam"]["min_page_size"]
    page = list_exams(conn, user_token, request, utc_now(), min_page_size, logger)
    return page.model_dump(by_alias=True, mode="json")


@router.get("/{session_id}")
async def inquiry(
    session_id: int,
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    return get_exam(conn, user_token, session_id, utc_now(), logger).model_dump(by_alias=True, mode="json")


@router.post("/{session_id}/answer")
async def answer(
    session_id: int,
    payload: Dict[str, Any] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    request = parse_request(AnswerExamRequest, payload)
    pass_score = load_config()["exam"]["speaking_pass_score"]
    result = answer_exam(conn, user_token, session_id, request, utc_now(), pass_score, logger)
    return result.model_dump(by_alias=True, mode="json")


@router.post("/{session_id}/submit")
async def submit(
    session_id: int,
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    result = submit_exam(conn, user_token, session_id, utc_now(), logger)
    return result.model_dump(by_alias=True, mode="json")


@router.post("/{session_id}/cancel")
async def cancel(
    session_id: int,
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    return cancel_exam(conn, user_token, session_id, utc_now(), logger).model_dump(by_alias=True, mode="json")
