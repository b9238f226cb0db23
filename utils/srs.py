from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

MIN_BOX = 1
MAX_BOX = 5
MIN_GRADE = 0
MAX_GRADE = 5
FAIL_MAX_GRADE = 2
HARD_PASS_GRADE = 3
CORRECT_GRADE = 4
INCORRECT_GRADE = 0

# box -> days until the next review
INTERVAL_TABLE = {1: 1, 2: 2, 3: 4, 4: 8, 5: 16}


@dataclass(frozen=True)
class SrsState:
    box: int = MIN_BOX
    streak: int = 0
    last_review_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    total_reviews: int = 0
    last_grade: Optional[int] = None


def interval_days(box: int) -> int:
    """Days between reviews for a Leitner box; boxes past the top share its interval."""
    if box >= MAX_BOX:
        return INTERVAL_TABLE[MAX_BOX]
    if box <= MIN_BOX:
        return INTERVAL_TABLE[MIN_BOX]
    return INTERVAL_TABLE[box]


def validate_grade(grade: int) -> int:
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise ValueError("grade must be an integer between 0 and 5")
    if grade < MIN_GRADE or grade > MAX_GRADE:
        raise ValueError("grade must be between 0 and 5")
    return grade


def grade_for_answer(is_correct: bool) -> int:
    return CORRECT_GRADE if is_correct else INCORRECT_GRADE


def is_passing(grade: int) -> bool:
    return grade > FAIL_MAX_GRADE


def apply_review(previous: Optional[SrsState], grade: int, now: datetime) -> SrsState:
    """Next Leitner state after one review.

    A missing record starts from box 1 with no streak; the grade rule is
    applied once on top of it.
    """
    validate_grade(grade)
    state = previous or SrsState()
    if grade <= FAIL_MAX_GRADE:
        box = MIN_BOX
        streak = 0
        next_review_at = now + timedelta(days=1)
    else:
        if grade == HARD_PASS_GRADE:
            box = state.box
        else:
            box = min(state.box + 1, MAX_BOX)
        streak = state.streak + 1
        next_review_at = now + timedelta(days=interval_days(box))
    return SrsState(
        box=box,
        streak=streak,
        last_review_at=now,
        next_review_at=next_review_at,
        total_reviews=state.total_reviews + 1,
        last_grade=grade,
    )
