from datetime import datetime, timedelta, timezone

import pytest

from utils.srs import MAX_BOX, SrsState, apply_review, grade_for_answer, interval_days, validate_grade

NOW = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)


def test_first_review_without_record_starts_in_box_one():
    state = apply_review(None, 3, NOW)
    assert state.box == 1
    assert state.streak == 1
    assert state.total_reviews == 1
    assert state.next_review_at == NOW + timedelta(days=1)


def test_easy_pass_promotes_and_uses_interval_table():
    state = apply_review(SrsState(box=2, streak=1, total_reviews=1), 5, NOW)
    assert state.box == 3
    assert state.streak == 2
    assert state.next_review_at == NOW + timedelta(days=4)


def test_hard_pass_keeps_box():
    state = apply_review(SrsState(box=3, streak=2, total_reviews=4), 3, NOW)
    assert state.box == 3
    assert state.streak == 3
    assert state.next_review_at == NOW + timedelta(days=4)


def test_failure_resets_box_and_streak():
    state = apply_review(SrsState(box=4, streak=6, total_reviews=9), 2, NOW)
    assert state.box == 1
    assert state.streak == 0
    assert state.total_reviews == 10
    assert state.last_grade == 2
    assert state.next_review_at == NOW + timedelta(days=1)


def test_box_is_capped():
    state = SrsState(box=MAX_BOX, streak=4)
    state = apply_review(state, 5, NOW)
    assert state.box == MAX_BOX
    assert state.next_review_at == NOW + timedelta(days=16)


def test_repeated_passes_never_exceed_cap_and_count_reviews():
    state = None
    for _ in range(12):
        state = apply_review(state, 4, NOW)
        assert 1 <= state.box <= MAX_BOX
    assert state.box == MAX_BOX
    assert state.total_reviews == 12


@pytest.mark.parametrize("box,days", [(1, 1), (2, 2), (3, 4), (4, 8), (5, 16), (9, 16)])
def test_interval_days(box, days):
    assert interval_days(box) == days


@pytest.mark.parametrize("grade", [-1, 6, 2.5, "3", True])
def test_invalid_grade_rejected(grade):
    with pytest.raises(ValueError):
        validate_grade(grade)
    with pytest.raises(ValueError):
        apply_review(None, grade, NOW)


def test_grade_for_answer():
    assert grade_for_answer(True) == 4
    assert grade_for_answer(False) == 0
