from __future__ import annotations

import asyncio
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from config import load_config
from utils.errors import StorageError

_MODEL_LOCK = threading.Lock()
_TRANSCRIBE_LOCK = threading.Lock()
_LOCAL_MODEL = None


def _resolve_stt_config() -> dict:
    return load_config().get("stt", {})


def _normalize_language(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    if not value or value.lower() in {"auto", "detect", "none"}:
        return None
    return value


def extract_transcript(payload: Any) -> str:
    """Pull the transcript out of a recognizer reply: `text`, else `body.text`."""
    if not isinstance(payload, dict):
        return ""
    text = payload.get("text")
    if text is None and isinstance(payload.get("body"), dict):
        text = payload["body"].get("text")
    return (text or "").strip()


async def _transcribe_remote(data: bytes, filename: str, media_type: str, cfg: dict, logger) -> str:
    url = cfg.get("url")
    if not url:
        logger.error("speech recognition url is not configured")
        raise StorageError()
    files = {"file": (filename, data, media_type)}
    form: Dict[str, str] = {}
    language = _normalize_language(cfg.get("language"))
    if language:
        form["language"] = language
    try:
        async with httpx.AsyncClient(timeout=cfg.get("timeout", 30)) as client:
            response = await client.post(url, files=files, data=form)
            response.raise_for_status()
            return extract_transcript(response.json())
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("speech recognition failed: %s", exc)
        raise StorageError() from exc


def _load_local_model(cfg: dict):
    global _LOCAL_MODEL
    if _LOCAL_MODEL is not None:
        return _LOCAL_MODEL
    with _MODEL_LOCK:
        if _LOCAL_MODEL is None:
            # optional extra: pip install lingocards[local-stt]
            from faster_whisper import WhisperModel

            _LOCAL_MODEL = WhisperModel(
                cfg.get("model", "base"),
                device=cfg.get("device", "cpu"),
                compute_type=cfg.get("compute_type", "int8"),
            )
    return _LOCAL_MODEL


def _transcribe_local_sync(data: bytes, suffix: str, cfg: dict) -> str:
    model = _load_local_model(cfg)
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        tmp.write(data)
        audio_path = Path(tmp.name)
    try:
        with _TRANSCRIBE_LOCK:
            segments, _info = model.transcribe(
                str(audio_path),
                language=_normalize_language(cfg.get("language")),
                vad_filter=cfg.get("vad_filter", True),
            )
            text = " ".join(segment.text.strip() for segment in segments if segment.text)
        return text.strip()
    finally:
        audio_path.unlink(missing_ok=True)


async def transcribe_audio(data: bytes, filename: str, media_type: str, logger) -> str:
    """Recognize speech in an uploaded clip with the configured provider."""
    cfg = _resolve_stt_config()
    provider = cfg.get("provider", "remote")
    if provider in {"faster-whisper", "faster_whisper"}:
        suffix = Path(filename).suffix or ".webm"
        try:
            return await asyncio.to_thread(_transcribe_local_sync, data, suffix, cfg)
        except ImportError as exc:
            logger.error("faster-whisper is not installed")
            raise StorageError() from exc
    return await _transcribe_remote(data, filename, media_type, cfg, logger)
