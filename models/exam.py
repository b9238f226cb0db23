from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExamStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUBMITTED = "SUBMITTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = {ExamStatus.SUBMITTED, ExamStatus.EXPIRED, ExamStatus.CANCELLED}


class ExamMode(str, Enum):
    MCQ = "MCQ"
    TYPING = "TYPING"
    LISTENING = "LISTENING"
    SPEAKING = "SPEAKING"
    MIXED = "MIXED"


# Snapshot question type per exam mode; MIXED exams are asked as multiple choice.
QUESTION_TYPE_BY_MODE = {
    ExamMode.MCQ: "MCQ",
    ExamMode.MIXED: "MCQ",
    ExamMode.TYPING: "TYPING",
    ExamMode.LISTENING: "LISTENING",
    ExamMode.SPEAKING: "SPEAKING",
}


class StartExamRequest(BaseModel):
    set_id: Optional[int] = Field(default=None, alias="setId", gt=0)
    daily_plan_id: Optional[int] = Field(default=None, alias="dailyPlanId", gt=0)
    question_count: Optional[int] = Field(default=None, alias="questionCount", ge=1)
    time_limit_seconds: Optional[int] = Field(default=None, alias="timeLimitSeconds", ge=1)
    mode: ExamMode = ExamMode.MCQ

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_source(self):
        if (self.set_id is None) == (self.daily_plan_id is None):
            raise ValueError("exactly one of setId or dailyPlanId must be provided")
        if self.set_id is not None and self.question_count is None:
            raise ValueError("questionCount is required when starting from a set")
        return self


class AnswerExamRequest(BaseModel):
    seq: int = Field(ge=1)
    choice: Optional[int] = Field(default=None, ge=1)
    typed_text: Optional[str] = Field(default=None, alias="typedText")
    spoken_text: Optional[str] = Field(default=None, alias="spokenText")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_single_response(self):
        given = [v for v in (self.choice, self.typed_text, self.spoken_text) if v is not None]
        if len(given) != 1:
            raise ValueError("exactly one of choice, typedText or spokenText must be provided")
        return self


class ExamListRequest(BaseModel):
    page: int = Field(default=1, ge=1)
    size: int = Field(default=10, ge=1)
    search_by: str = Field(default="", alias="searchBy")

    model_config = ConfigDict(populate_by_name=True)


class ExamQuestion(BaseModel):
    question_id: int = Field(serialization_alias="questionId")
    seq: int
    card_id: int = Field(serialization_alias="cardId")
    question_type: str = Field(serialization_alias="questionType")
    front: str
    back: str
    choices: List[str] = Field(default_factory=list)
    score_max: int = Field(default=1, serialization_alias="scoreMax")


class ExamAnswer(BaseModel):
    answer_id: int = Field(serialization_alias="answerId")
    selected_choice: Optional[int] = Field(default=None, serialization_alias="selectedChoice")
    typed_text: Optional[str] = Field(default=None, serialization_alias="typedText")
    recognized_text: Optional[str] = Field(default=None, serialization_alias="recognizedText")
    pronunciation_score: Optional[int] = Field(default=None, serialization_alias="pronunciationScore")
    is_correct: bool = Field(serialization_alias="isCorrect")
    score_awarded: int = Field(serialization_alias="scoreAwarded")
    answered_at: datetime = Field(serialization_alias="answeredAt")
    detail: Dict[str, Any] = Field(default_factory=dict)


class ExamQuestionWithAnswer(ExamQuestion):
    answer: Optional[ExamAnswer] = None


class ExamSessionSummary(BaseModel):
    id: int
    mode: ExamMode
    source_set_id: Optional[int] = Field(default=None, serialization_alias="sourceSetId")
    plan_id: Optional[int] = Field(default=None, serialization_alias="planId")
    total_questions: int = Field(serialization_alias="totalQuestions")
    time_limit_sec: Optional[int] = Field(default=None, serialization_alias="timeLimitSec")
    status: ExamStatus
    started_at: datetime = Field(serialization_alias="startedAt")
    expires_at: Optional[datetime] = Field(default=None, serialization_alias="expiresAt")
    submitted_at: Optional[datetime] = Field(default=None, serialization_alias="submittedAt")
    score_total: Optional[int] = Field(default=None, serialization_alias="scoreTotal")
    score_max: int = Field(serialization_alias="scoreMax")
    created_at: datetime = Field(serialization_alias="createdAt")


class ExamSession(ExamSessionSummary):
    questions: List[ExamQuestionWithAnswer] = Field(default_factory=list)


class StartExamResponse(BaseModel):
    id: int
    status: ExamStatus
    expires_at: Optional[datetime] = Field(default=None, serialization_alias="expiresAt")
    questions: List[ExamQuestion]


class AnswerExamResponse(BaseModel):
    seq: int
    correct: bool


class SubmitExamResponse(BaseModel):
    id: int
    score: int
    score_max: int = Field(serialization_alias="scoreMax")


class ExamPage(BaseModel):
    content: List[ExamSessionSummary]
    page: int
    size: int
    total_elements: int = Field(serialization_alias="totalElements")
    total_pages: int = Field(serialization_alias="totalPages")
