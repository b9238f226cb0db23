from __future__ import annotations

import mimetypes
from datetime import datetime
from typing import Optional

from db.database import to_db_ts, transaction
from models.voice import PronunciationScore
from utils.errors import ValidationError
from utils.stt import transcribe_audio
from utils.wer import score_by_wer

GENERIC_MEDIA_TYPE = "application/octet-stream"


def resolve_media_type(filename: Optional[str], content_type: Optional[str]) -> str:
    """Declared content type, else a guess from the file name; must be audio."""
    media_type = (content_type or "").split(";")[0].strip().lower()
    if not media_type or media_type == GENERIC_MEDIA_TYPE:
        guessed, _ = mimetypes.guess_type(filename or "")
        media_type = (guessed or media_type or GENERIC_MEDIA_TYPE).lower()
    if media_type.startswith("audio/") or media_type == GENERIC_MEDIA_TYPE:
        return media_type
    # browsers label recorded webm clips as video/webm
    if media_type == "video/webm":
        return "audio/webm"
    raise ValidationError.for_field("audio", f"unsupported media type {media_type}")


async def score_pronunciation(
    conn,
    user_token: str,
    reference_text: str,
    audio: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    now: datetime,
    logger,
) -> PronunciationScore:
    reference_text = (reference_text or "").strip()
    if not reference_text:
        raise ValidationError.for_field("text", "text must not be blank")
    if not audio:
        raise ValidationError.for_field("audio", "audio file is empty")
    media_type = resolve_media_type(filename, content_type)

    transcript = await transcribe_audio(audio, filename or "speech.webm", media_type, logger)
    report = score_by_wer(reference_text, transcript)

    with transaction(conn, logger, "store pronunciation attempt"):
        conn.execute(
            """
            INSERT INTO pronunciation_attempts (user_token, source_text, stt_text, score, wer, media_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (user_token, reference_text, transcript, report.score, report.wer, media_type, to_db_ts(now)),
        )
    logger.info("pronunciation score=%d wer=%.3f", report.score, report.wer)
    return PronunciationScore(
        source_text=reference_text,
        stt_text=transcript,
        score=report.score,
        wer=report.wer,
        details=report.to_dict(),
    )
