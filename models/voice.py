from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator


class SpeechRequest(BaseModel):
    text: str = Field(min_length=1, max_length=1000)
    speed: float = Field(default=1.0, gt=0, le=4)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("text must not be blank")
        return v


class SpeechResponse(BaseModel):
    audio_url: str = Field(serialization_alias="audioUrl")
    cached: bool


class PronunciationScore(BaseModel):
    source_text: str = Field(serialization_alias="sourceText")
    stt_text: str = Field(serialization_alias="sttText")
    score: int
    wer: float
    details: Dict[str, Any]
