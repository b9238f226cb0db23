from __future__ import annotations

from dataclasses import asdict, dataclass, field
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional

from Levenshtein import ratio as lev_ratio

from models.exam import AnswerExamRequest, ExamQuestion
from utils.wer import score_by_wer


@dataclass
class AnswerEvaluation:
    is_correct: bool
    score_awarded: int
    selected_choice: Optional[int] = None
    typed_text: Optional[str] = None
    recognized_text: Optional[str] = None
    pronunciation_score: Optional[int] = None
    detail: Dict[str, Any] = field(default_factory=dict)


def _clean(text: str) -> str:
    return " ".join(text.split()).casefold()


def similarity(expected: str, actual: str) -> float:
    return round(lev_ratio(_clean(expected), _clean(actual)), 4)


def token_diff(expected_text: str, actual_text: str) -> Dict[str, List[Dict[str, str]]]:
    """Whitespace-token diff between the expected answer and what was typed."""
    expected_tokens = expected_text.split() if expected_text else []
    actual_tokens = actual_text.split() if actual_text else []
    matcher = SequenceMatcher(None, expected_tokens, actual_tokens)
    expected: List[Dict[str, str]] = []
    actual: List[Dict[str, str]] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            expected.extend({"token": t, "status": "match"} for t in expected_tokens[i1:i2])
            actual.extend({"token": t, "status": "match"} for t in actual_tokens[j1:j2])
            continue
        if tag in ("delete", "replace"):
            status = "missing" if tag == "delete" else "substitution"
            expected.extend({"token": t, "status": status} for t in expected_tokens[i1:i2])
        if tag in ("insert", "replace"):
            status = "extra" if tag == "insert" else "substitution"
            actual.extend({"token": t, "status": status} for t in actual_tokens[j1:j2])
    return {"expected": expected, "actual": actual}


def evaluate_answer(question: ExamQuestion, answer: AnswerExamRequest, speaking_pass_score: int) -> AnswerEvaluation:
    """Grade one answer against the frozen question snapshot.

    The live card is never consulted: correctness is decided by the
    snapshot's back value and choices as they were when the exam started.
    """
    expected = question.back
    if answer.choice is not None:
        # an index outside the snapshot choices is a wrong answer, not a bad request
        chosen = question.choices[answer.choice - 1] if answer.choice <= len(question.choices) else None
        is_correct = chosen is not None and chosen == expected
        return AnswerEvaluation(
            is_correct=is_correct,
            score_awarded=question.score_max if is_correct else 0,
            selected_choice=answer.choice,
            detail={
                "response": chosen,
                "expected": expected,
                "similarity": similarity(expected, chosen or ""),
            },
        )

    if answer.typed_text is not None:
        typed = answer.typed_text
        is_correct = _clean(typed) == _clean(expected)
        return AnswerEvaluation(
            is_correct=is_correct,
            score_awarded=question.score_max if is_correct else 0,
            typed_text=typed,
            detail={
                "response": typed,
                "expected": expected,
                "similarity": similarity(expected, typed),
                "diff": token_diff(expected, typed),
            },
        )

    spoken = answer.spoken_text or ""
    report = score_by_wer(expected, spoken)
    is_correct = report.score >= speaking_pass_score
    return AnswerEvaluation(
        is_correct=is_correct,
        score_awarded=question.score_max if is_correct else 0,
        recognized_text=spoken,
        pronunciation_score=report.score,
        detail={
            "response": spoken,
            "expected": expected,
            "similarity": similarity(expected, spoken),
            "wer": report.wer,
            "mismatches": [asdict(m) for m in report.mismatches],
        },
    )
