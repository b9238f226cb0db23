import random
import sqlite3
from datetime import timedelta

import pytest

from models.exam import AnswerExamRequest, ExamListRequest, ExamStatus, StartExamRequest
from utils import exam as exam_module
from utils.errors import ConflictError, NotFoundError, StorageError, ValidationError
from utils.exam import answer_exam, cancel_exam, get_exam, list_exams, start_exam, submit_exam

CARDS = [
    ("hola", "hello", ["hello", "bye", "thanks"]),
    ("adios", "bye", ["hello", "bye", "thanks"]),
    ("gracias", "thanks", ["thanks", "hello", "bye"]),
]


def _start(conn, logger, now, set_id, count=3, **extra):
    request = StartExamRequest.model_validate({"setId": set_id, "questionCount": count, **extra})
    return start_exam(conn, "alice", request, now, logger, rng=random.Random(7))


def _answer_all_correct(conn, logger, now, started):
    for question in started.questions:
        choice = question.choices.index(question.back) + 1
        answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=question.seq, choice=choice), now, 80, logger)


def test_start_snapshots_sampled_cards(conn, make_set, logger, now):
    set_id, card_ids = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id, count=2)

    assert started.status == ExamStatus.ACTIVE
    assert [q.seq for q in started.questions] == [1, 2]
    assert len({q.card_id for q in started.questions}) == 2
    assert {q.card_id for q in started.questions} <= set(card_ids)
    assert all(q.question_type == "MCQ" for q in started.questions)


def test_start_requires_live_source(conn, make_set, logger, now):
    with pytest.raises(NotFoundError):
        _start(conn, logger, now, 999)
    empty_id, _ = make_set("owner", [])
    with pytest.raises(ValidationError):
        _start(conn, logger, now, empty_id)


def test_answers_are_graded_against_snapshot(conn, make_set, logger, now):
    set_id, _ = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id)
    question = started.questions[0]
    correct_choice = question.choices.index(question.back) + 1

    # later edits to the live card do not affect grading
    conn.execute(
        "UPDATE flashcards SET back = 'changed', choices = '[\"changed\"]' WHERE id = ?",
        (question.card_id,),
    )
    result = answer_exam(
        conn, "alice", started.id, AnswerExamRequest(seq=question.seq, choice=correct_choice), now, 80, logger
    )
    assert result.correct is True

    wrong_choice = 1 if correct_choice != 1 else 2
    result = answer_exam(
        conn, "alice", started.id, AnswerExamRequest(seq=question.seq, choice=wrong_choice), now, 80, logger
    )
    assert result.correct is False
    count = conn.execute("SELECT COUNT(*) FROM exam_answers WHERE session_id = ?", (started.id,)).fetchone()[0]
    assert count == 1


def test_typed_and_spoken_answers(conn, make_set, logger, now):
    set_id, _ = make_set("owner", [("gato", "the cat", [])])
    started = _start(conn, logger, now, set_id, count=1)

    typed = answer_exam(
        conn, "alice", started.id, AnswerExamRequest(seq=1, typed_text="  The   CAT "), now, 80, logger
    )
    assert typed.correct is True
    spoken = answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=1, spoken_text="a dog"), now, 80, logger)
    assert spoken.correct is False

    session = get_exam(conn, "alice", started.id, now, logger)
    answer = session.questions[0].answer
    assert answer.recognized_text == "a dog"
    assert answer.pronunciation_score == 0
    assert answer.detail["expected"] == "the cat"


def test_choice_out_of_range_is_a_wrong_answer(conn, make_set, logger, now):
    set_id, _ = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id)
    result = answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=1, choice=9), now, 80, logger)
    assert result.correct is False
    answer = get_exam(conn, "alice", started.id, now, logger).questions[0].answer
    assert answer.selected_choice == 9
    assert answer.is_correct is False
    with pytest.raises(NotFoundError):
        answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=9, choice=1), now, 80, logger)


def test_submit_requires_every_answer(conn, make_set, logger, now):
    set_id, _ = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id)
    answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=1, choice=1), now, 80, logger)

    with pytest.raises(ConflictError):
        submit_exam(conn, "alice", started.id, now, logger)
    assert get_exam(conn, "alice", started.id, now, logger).status == ExamStatus.ACTIVE


def test_submit_updates_srs_and_closes_session(conn, make_set, logger, now):
    set_id, _ = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id)
    _answer_all_correct(conn, logger, now, started)

    result = submit_exam(conn, "alice", started.id, now, logger)

    assert result.score == 3
    assert result.score_max == 3
    rows = conn.execute("SELECT box, streak FROM user_flashcard_srs WHERE user_token = 'alice'").fetchall()
    assert len(rows) == 3
    assert all(row["box"] == 2 and row["streak"] == 1 for row in rows)
    logs = conn.execute("SELECT source, is_correct FROM review_log").fetchall()
    assert {(row["source"], row["is_correct"]) for row in logs} == {("EXAM", "Y")}

    session = get_exam(conn, "alice", started.id, now, logger)
    assert session.status == ExamStatus.SUBMITTED
    assert session.score_total == 3

    with pytest.raises(ConflictError):
        submit_exam(conn, "alice", started.id, now, logger)
    with pytest.raises(ConflictError):
        answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=1, choice=1), now, 80, logger)


def test_storage_failure_during_submit_rolls_back(conn, make_set, logger, now, monkeypatch):
    set_id, _ = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id)
    _answer_all_correct(conn, logger, now, started)
    real_record_review = exam_module.record_review
    calls = []

    def failing_record_review(*args, **kwargs):
        calls.append(kwargs["card_id"])
        if len(calls) == 2:
            raise sqlite3.OperationalError("disk I/O error")
        return real_record_review(*args, **kwargs)

    monkeypatch.setattr(exam_module, "record_review", failing_record_review)
    with pytest.raises(StorageError):
        submit_exam(conn, "alice", started.id, now, logger)

    assert get_exam(conn, "alice", started.id, now, logger).status == ExamStatus.ACTIVE
    assert conn.execute("SELECT COUNT(*) FROM user_flashcard_srs").fetchone()[0] == 0
    assert conn.execute("SELECT COUNT(*) FROM review_log").fetchone()[0] == 0

    monkeypatch.setattr(exam_module, "record_review", real_record_review)
    assert submit_exam(conn, "alice", started.id, now, logger).score == 3


def test_expired_session_reads_expired_and_rejects_answers(conn, make_set, logger, now):
    set_id, _ = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id, timeLimitSeconds=60)
    later = now + timedelta(minutes=5)

    assert get_exam(conn, "alice", started.id, now, logger).status == ExamStatus.ACTIVE
    assert get_exam(conn, "alice", started.id, later, logger).status == ExamStatus.EXPIRED
    stored = conn.execute("SELECT status FROM exam_sessions WHERE id = ?", (started.id,)).fetchone()[0]
    assert stored == "ACTIVE"

    with pytest.raises(ConflictError):
        answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=1, choice=1), later, 80, logger)
    with pytest.raises(ConflictError):
        cancel_exam(conn, "alice", started.id, later, logger)


def test_cancel_and_ownership(conn, make_set, logger, now):
    set_id, _ = make_set("owner", CARDS)
    started = _start(conn, logger, now, set_id)

    with pytest.raises(NotFoundError):
        get_exam(conn, "mallory", started.id, now, logger)
    with pytest.raises(NotFoundError):
        cancel_exam(conn, "mallory", started.id, now, logger)

    assert cancel_exam(conn, "alice", started.id, now, logger).status == ExamStatus.CANCELLED
    with pytest.raises(ConflictError):
        submit_exam(conn, "alice", started.id, now, logger)
    with pytest.raises(ConflictError):
        answer_exam(conn, "alice", started.id, AnswerExamRequest(seq=1, choice=1), now, 80, logger)


def test_start_from_daily_plan_keeps_plan_order(conn, make_set, logger, now):
    set_id, card_ids = make_set("owner", CARDS)
    plan_id = conn.execute(
        "INSERT INTO daily_plans (user_token, plan_date, created_at, updated_at) VALUES ('alice', '2024-03-10', '', '')"
    ).lastrowid
    for position, card_id in enumerate(reversed(card_ids), start=1):
        conn.execute(
            "INSERT INTO daily_plan_cards (plan_id, position, card_id) VALUES (?, ?, ?)",
            (plan_id, position, card_id),
        )

    request = StartExamRequest.model_validate({"dailyPlanId": plan_id})
    started = start_exam(conn, "alice", request, now, logger)
    assert [q.card_id for q in started.questions] == list(reversed(card_ids))

    with pytest.raises(NotFoundError):
        start_exam(conn, "bob", request, now, logger)

    _answer_all_correct(conn, logger, now, started)
    submit_exam(conn, "alice", started.id, now, logger)
    sources = {row[0] for row in conn.execute("SELECT source FROM review_log").fetchall()}
    assert sources == {"DAILY"}


def test_list_exams_pages_and_filters(conn, make_set, logger, now):
    set_id, _ = make_set("owner", CARDS)
    for offset in range(12):
        _start(conn, logger, now + timedelta(seconds=offset), set_id, count=1)
    typing = _start(conn, logger, now + timedelta(minutes=1), set_id, count=1, mode="TYPING")

    first = list_exams(conn, "alice", ExamListRequest(page=1, size=10), now, 10, logger)
    assert first.total_elements == 13
    assert first.total_pages == 2
    assert len(first.content) == 10
    assert first.content[0].id == typing.id

    second = list_exams(conn, "alice", ExamListRequest(page=2, size=10), now, 10, logger)
    assert len(second.content) == 3

    filtered = list_exams(conn, "alice", ExamListRequest(size=10, search_by="typing"), now, 10, logger)
    assert filtered.total_elements == 1

    assert list_exams(conn, "bob", ExamListRequest(size=10), now, 10, logger).total_elements == 0
    with pytest.raises(ValidationError):
        list_exams(conn, "alice", ExamListRequest(size=5), now, 10, logger)
