from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, File, Form, UploadFile

from db.database import get_db, utc_now
from models.validation import parse_request
from models.voice import SpeechRequest
from utils.auth import require_user_token
from utils.logs import get_request_logger
from utils.pronunciation import score_pronunciation
from utils.tts import synthesize_speech

router = APIRouter()


@router.post("/pronunciation-score")
async def pronunciation_score(
    text: str = Form(...),
    audio: UploadFile = File(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    data = await audio.read()
    result = await score_pronunciation(
        conn,
        user_token,
        text,
        data,
        audio.filename,
        audio.content_type,
        utc_now(),
        logger,
    )
    return result.model_dump(by_alias=True, mode="json")


@router.post("/tts")
async def text_to_speech(
    payload: Dict[str, Any] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    request = parse_request(SpeechRequest, payload)
    result = await synthesize_speech(conn, request.text, request.speed, utc_now(), logger)
    return result.model_dump(by_alias=True, mode="json")
