import pytest

from utils.auth import sign_user_token, verify_user_token
from utils.errors import ValidationError
from utils.pronunciation import resolve_media_type
from utils.stt import extract_transcript
from utils.tts import build_cache_key, parse_tts_reply


def test_extract_transcript_reads_text_or_body_text():
    assert extract_transcript({"text": " hello "}) == "hello"
    assert extract_transcript({"body": {"text": "nested"}}) == "nested"
    assert extract_transcript({"other": 1}) == ""
    assert extract_transcript(["not", "a", "dict"]) == ""


def test_parse_tts_reply():
    assert parse_tts_reply({"url": "u", "key": "k"}) == ("u", "k")
    assert parse_tts_reply({"body": {"url": "u"}}) == ("u", None)
    with pytest.raises(ValueError):
        parse_tts_reply({"body": {}})


def test_cache_key_ignores_case_and_punctuation():
    key = build_cache_key("Hello, World!", 1.0, "mp3", "en-US")
    assert key == build_cache_key("hello world", 1.0, "mp3", "en-US")
    assert key != build_cache_key("hello world", 1.25, "mp3", "en-US")
    assert key != build_cache_key("hello world", 1.0, "wav", "en-US")
    assert len(key) == 64


@pytest.mark.parametrize(
    "filename,content_type,expected",
    [
        ("clip.wav", "audio/wav", "audio/wav"),
        ("clip.mp3", None, "audio/mpeg"),
        ("clip.bin", "application/octet-stream", "application/octet-stream"),
        ("clip.webm", "video/webm", "audio/webm"),
        ("clip.ogg", "audio/ogg; codecs=opus", "audio/ogg"),
    ],
)
def test_resolve_media_type(filename, content_type, expected):
    assert resolve_media_type(filename, content_type) == expected


def test_resolve_media_type_rejects_documents():
    with pytest.raises(ValidationError):
        resolve_media_type("notes.txt", "text/plain")


def test_user_token_signatures():
    assert verify_user_token("alice", "") == "alice"
    assert verify_user_token("  ", "") is None
    signed = sign_user_token("alice", "key")
    assert verify_user_token(signed, "key") == "alice"
    assert verify_user_token(signed, "other-key") is None
    assert verify_user_token("alice", "key") is None
