from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReviewSource(str, Enum):
    PRACTICE = "PRACTICE"
    EXAM = "EXAM"
    DAILY = "DAILY"


class ReviewSubmit(BaseModel):
    card_id: int = Field(alias="cardId", gt=0)
    source: ReviewSource = ReviewSource.PRACTICE
    grade: int
    is_correct: Optional[bool] = Field(default=None, alias="isCorrect")
    answer_detail: Dict[str, Any] = Field(default_factory=dict, alias="answerDetail")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("grade", mode="before")
    @classmethod
    def validate_grade(cls, v):
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("grade must be an integer between 0 and 5")
        if v < 0 or v > 5:
            raise ValueError("grade must be between 0 and 5")
        return v

    @field_validator("is_correct", mode="before")
    @classmethod
    def accept_flag(cls, v):
        # Y/N flags are what the clients send
        if isinstance(v, str) and v.upper() in {"Y", "N"}:
            return v.upper() == "Y"
        return v


class SrsRecord(BaseModel):
    card_id: int = Field(serialization_alias="cardId")
    box: int
    streak: int
    last_review_at: Optional[datetime] = Field(default=None, serialization_alias="lastReviewAt")
    next_review_at: Optional[datetime] = Field(default=None, serialization_alias="nextReviewAt")
    total_reviews: int = Field(serialization_alias="totalReviews")
    last_grade: Optional[int] = Field(default=None, serialization_alias="lastGrade")
