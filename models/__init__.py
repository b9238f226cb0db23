from .card import Card, CardCreate, CardPatch, FlashcardSet, FlashcardSetCreate
from .review import ReviewSource, ReviewSubmit, SrsRecord
from .plan import DailyPlan, DailyPlanCard, DailyPlanRun, DailyPlanSettingsPatch, PlanRunStatus
from .exam import (
    AnswerExamRequest,
    ExamListRequest,
    ExamMode,
    ExamPage,
    ExamSession,
    ExamStatus,
    StartExamRequest,
)
from .voice import PronunciationScore, SpeechRequest, SpeechResponse
from .validation import parse_request

__all__ = [
    'Card', 'CardCreate', 'CardPatch', 'FlashcardSet', 'FlashcardSetCreate',
    'ReviewSource', 'ReviewSubmit', 'SrsRecord',
    'DailyPlan', 'DailyPlanCard', 'DailyPlanRun', 'DailyPlanSettingsPatch', 'PlanRunStatus',
    'AnswerExamRequest', 'ExamListRequest', 'ExamMode', 'ExamPage', 'ExamSession', 'ExamStatus',
    'StartExamRequest',
    'PronunciationScore', 'SpeechRequest', 'SpeechResponse',
    'parse_request',
]
