from __future__ import annotations

import hashlib
import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx

from config import load_config
from db.database import to_db_ts, transaction
from models.voice import SpeechResponse
from utils.errors import StorageError

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")


def normalize_for_cache(text: str) -> str:
    return _NON_ALNUM_RE.sub("", text.lower())


def build_cache_key(text: str, speed: float, audio_format: str, locale: str) -> str:
    """Identical phrasing (ignoring case, spacing and punctuation) shares one clip."""
    raw = f"{normalize_for_cache(text)}|{speed:g}|{audio_format}|{locale}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _hit_cache(conn, cache_key: str, now: datetime) -> Optional[str]:
    cursor = conn.cursor()
    cursor.execute("SELECT audio_url FROM tts_cache WHERE cache_key = ?", (cache_key,))
    row = cursor.fetchone()
    if not row:
        return None
    conn.execute(
        "UPDATE tts_cache SET hit_count = hit_count + 1, last_accessed_at = ? WHERE cache_key = ?",
        (to_db_ts(now), cache_key),
    )
    return row["audio_url"]


def _store_cache(conn, cache_key: str, text: str, audio_url: str, storage_key: Optional[str], now: datetime) -> None:
    conn.execute(
        """
        INSERT INTO tts_cache (cache_key, text, audio_url, storage_key, hit_count, created_at, last_accessed_at)
        VALUES (?, ?, ?, ?, 0, ?, ?)
        ON CONFLICT(cache_key) DO UPDATE SET
            audio_url = excluded.audio_url,
            storage_key = excluded.storage_key,
            last_accessed_at = excluded.last_accessed_at
        """,
        (cache_key, text, audio_url, storage_key, to_db_ts(now), to_db_ts(now)),
    )


def parse_tts_reply(payload: Any) -> Tuple[str, Optional[str]]:
    """(url, key) from `{url, key}` or `{body: {url, key}}`."""
    if isinstance(payload, dict) and isinstance(payload.get("body"), dict):
        payload = payload["body"]
    if not isinstance(payload, dict) or not payload.get("url"):
        raise ValueError("speech synthesis reply has no url")
    return payload["url"], payload.get("key")


async def _request_speech(text: str, speed: float, cfg: Dict[str, Any], logger) -> Tuple[str, Optional[str]]:
    url = cfg.get("url")
    if not url:
        logger.error("speech synthesis url is not configured")
        raise StorageError()
    body = {
        "prompt": text,
        "speed": speed,
        "format": cfg.get("format", "mp3"),
        "locale": cfg.get("locale", "en-US"),
    }
    try:
        async with httpx.AsyncClient(timeout=cfg.get("timeout", 30)) as client:
            response = await client.post(url, json=body)
            response.raise_for_status()
            return parse_tts_reply(response.json())
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("speech synthesis failed: %s", exc)
        raise StorageError() from exc


async def synthesize_speech(conn, text: str, speed: float, now: datetime, logger) -> SpeechResponse:
    cfg = load_config().get("tts", {})
    cache_key = build_cache_key(text, speed, cfg.get("format", "mp3"), cfg.get("locale", "en-US"))
    with transaction(conn, logger, "tts cache lookup"):
        audio_url = _hit_cache(conn, cache_key, now)
    if audio_url:
        logger.info("tts cache hit %s", cache_key[:12])
        return SpeechResponse(audio_url=audio_url, cached=True)

    logger.info("tts cache miss %s", cache_key[:12])
    audio_url, storage_key = await _request_speech(text, speed, cfg, logger)
    with transaction(conn, logger, "tts cache store"):
        _store_cache(conn, cache_key, text, audio_url, storage_key, now)
    return SpeechResponse(audio_url=audio_url, cached=False)
