"""Exam sessions: snapshot on start, answer against the snapshot, submit into SRS.

Questions are value copies of the cards taken when the session opens, so a
card edited or deleted mid-exam never changes how the exam is graded.
"""
from __future__ import annotations

import json
import math
import random
from datetime import datetime, timedelta
from typing import List, Optional

from db.database import from_db_ts, storage_errors, to_db_ts, transaction
from models.exam import (
    QUESTION_TYPE_BY_MODE,
    TERMINAL_STATUSES,
    AnswerExamRequest,
    AnswerExamResponse,
    ExamAnswer,
    ExamListRequest,
    ExamPage,
    ExamQuestion,
    ExamQuestionWithAnswer,
    ExamSession,
    ExamSessionSummary,
    ExamStatus,
    StartExamRequest,
    StartExamResponse,
    SubmitExamResponse,
)
from utils.cards import fetch_cards_by_ids, fetch_set, list_set_cards
from utils.daily_plan import fetch_plan
from utils.errors import ConflictError, NotFoundError, ValidationError
from utils.grading import evaluate_answer
from utils.progress import record_review
from utils.srs import grade_for_answer

# Stored ACTIVE sessions read as EXPIRED once expires_at has passed.
SESSION_SELECT = """
    SELECT
        id,
        user_token,
        mode,
        source_set_id,
        plan_id,
        total_questions,
        time_limit_sec,
        CASE
            WHEN status = 'ACTIVE' AND expires_at IS NOT NULL AND expires_at <= ? THEN 'EXPIRED'
            ELSE status
        END AS status,
        started_at,
        expires_at,
        submitted_at,
        score_total,
        score_max,
        created_at
    FROM exam_sessions
"""

QUESTION_SELECT = """
    SELECT
        id AS question_id,
        seq,
        card_id,
        question_type,
        front_snapshot AS front,
        back_snapshot AS back,
        choices_snapshot AS choices,
        score_max
    FROM exam_questions
"""


def _row_to_summary(row) -> ExamSessionSummary:
    data = dict(row)
    for key in ("started_at", "expires_at", "submitted_at", "created_at"):
        data[key] = from_db_ts(data[key])
    data.pop("user_token", None)
    return ExamSessionSummary.model_validate(data)


def _row_to_question(row) -> ExamQuestion:
    data = dict(row)
    data["choices"] = json.loads(data.get("choices") or "[]")
    return ExamQuestion.model_validate(data)


def _row_to_answer(row) -> ExamAnswer:
    return ExamAnswer(
        answer_id=row["answer_id"],
        selected_choice=row["selected_choice"],
        typed_text=row["typed_text"],
        recognized_text=row["recognized_text"],
        pronunciation_score=row["pronunciation_score"],
        is_correct=row["is_correct"] == "Y",
        score_awarded=row["score_awarded"],
        answered_at=from_db_ts(row["answered_at"]),
        detail=json.loads(row["detail"] or "{}"),
    )


def fetch_session(conn, user_token: str, session_id: int, now: datetime) -> ExamSessionSummary:
    """Session header with the lazily computed status; other users' sessions do not exist."""
    cursor = conn.cursor()
    cursor.execute(SESSION_SELECT + " WHERE id = ?", (to_db_ts(now), session_id))
    row = cursor.fetchone()
    if not row or row["user_token"] != user_token:
        raise NotFoundError("exam session not found")
    return _row_to_summary(row)


def _require_active(session: ExamSessionSummary) -> None:
    if session.status == ExamStatus.EXPIRED:
        raise ConflictError("exam session has expired")
    if session.status in TERMINAL_STATUSES:
        raise ConflictError(f"exam session is {session.status.value.lower()}")


def fetch_questions(conn, session_id: int) -> List[ExamQuestion]:
    cursor = conn.cursor()
    cursor.execute(QUESTION_SELECT + " WHERE session_id = ? ORDER BY seq ASC", (session_id,))
    return [_row_to_question(row) for row in cursor.fetchall()]


def fetch_question(conn, session_id: int, seq: int) -> Optional[ExamQuestion]:
    cursor = conn.cursor()
    cursor.execute(QUESTION_SELECT + " WHERE session_id = ? AND seq = ?", (session_id, seq))
    row = cursor.fetchone()
    return _row_to_question(row) if row else None


def _pick_card_ids(conn, user_token: str, request: StartExamRequest, rng: random.Random) -> List[int]:
    if request.set_id is not None:
        if fetch_set(conn, request.set_id) is None:
            raise NotFoundError("flashcard set not found")
        card_ids = [card.id for card in list_set_cards(conn, request.set_id)]
        if not card_ids:
            raise ValidationError.for_field("setId", "flashcard set has no cards")
        return rng.sample(card_ids, min(request.question_count, len(card_ids)))

    plan = fetch_plan(conn, request.daily_plan_id)
    if plan is None or plan.user_token != user_token:
        raise NotFoundError("daily plan not found")
    card_ids = plan.card_ids
    if request.question_count is not None:
        card_ids = card_ids[: request.question_count]
    if not card_ids:
        raise ValidationError.for_field("dailyPlanId", "daily plan has no cards")
    return card_ids


def start_exam(
    conn,
    user_token: str,
    request: StartExamRequest,
    now: datetime,
    logger,
    rng: Optional[random.Random] = None,
) -> StartExamResponse:
    rng = rng or random.Random()
    question_type = QUESTION_TYPE_BY_MODE[request.mode]
    expires_at = None
    if request.time_limit_seconds:
        expires_at = now + timedelta(seconds=request.time_limit_seconds)

    with transaction(conn, logger, "start exam"):
        card_ids = _pick_card_ids(conn, user_token, request, rng)
        cards = fetch_cards_by_ids(conn, card_ids)
        snapshot = [cards[card_id] for card_id in card_ids if card_id in cards]
        if not snapshot:
            raise ValidationError("no live cards to build an exam from")
        cursor = conn.execute(
            """
            INSERT INTO exam_sessions (
                user_token, mode, source_set_id, plan_id, total_questions, time_limit_sec,
                status, started_at, expires_at, score_max, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 'ACTIVE', ?, ?, ?, ?)
            """,
            (
                user_token,
                request.mode.value,
                request.set_id,
                request.daily_plan_id,
                len(snapshot),
                request.time_limit_seconds,
                to_db_ts(now),
                to_db_ts(expires_at),
                len(snapshot),
                to_db_ts(now),
            ),
        )
        session_id = cursor.lastrowid
        conn.executemany(
            """
            INSERT INTO exam_questions (
                session_id, seq, card_id, question_type,
                front_snapshot, back_snapshot, choices_snapshot, score_max
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 1)
            """,
            [
                (session_id, seq, card.id, question_type, card.front, card.back, json.dumps(card.choices))
                for seq, card in enumerate(snapshot, start=1)
            ],
        )
        questions = fetch_questions(conn, session_id)

    logger.info("started exam %s (%s, %d questions)", session_id, request.mode.value, len(questions))
    return StartExamResponse(
        id=session_id,
        status=ExamStatus.ACTIVE,
        expires_at=expires_at,
        questions=questions,
    )


def answer_exam(
    conn,
    user_token: str,
    session_id: int,
    answer: AnswerExamRequest,
    now: datetime,
    speaking_pass_score: int,
    logger,
) -> AnswerExamResponse:
    with transaction(conn, logger, "answer exam"):
        session = fetch_session(conn, user_token, session_id, now)
        _require_active(session)
        question = fetch_question(conn, session_id, answer.seq)
        if question is None:
            raise NotFoundError(f"question {answer.seq} not found")
        result = evaluate_answer(question, answer, speaking_pass_score)
        conn.execute(
            """
            INSERT INTO exam_answers (
                session_id, question_id, user_token, selected_choice, typed_text,
                recognized_text, pronunciation_score, is_correct, score_awarded,
                answered_at, detail
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id, question_id) DO UPDATE SET
                selected_choice = excluded.selected_choice,
                typed_text = excluded.typed_text,
                recognized_text = excluded.recognized_text,
                pronunciation_score = excluded.pronunciation_score,
                is_correct = excluded.is_correct,
                score_awarded = excluded.score_awarded,
                answered_at = excluded.answered_at,
                detail = excluded.detail
            """,
            (
                session_id,
                question.question_id,
                user_token,
                result.selected_choice,
                result.typed_text,
                result.recognized_text,
                result.pronunciation_score,
                "Y" if result.is_correct else "N",
                result.score_awarded,
                to_db_ts(now),
                json.dumps(result.detail),
            ),
        )
    logger.debug("exam %s seq=%s correct=%s", session_id, answer.seq, result.is_correct)
    return AnswerExamResponse(seq=answer.seq, correct=result.is_correct)


def submit_exam(conn, user_token: str, session_id: int, now: datetime, logger) -> SubmitExamResponse:
    """Close an exam: every answer moves its card's SRS state, then the session is SUBMITTED.

    All of it commits together or not at all.
    """
    with transaction(conn, logger, "submit exam"):
        session = fetch_session(conn, user_token, session_id, now)
        _require_active(session)
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT q.seq, q.card_id, a.is_correct, a.score_awarded
            FROM exam_questions q
            LEFT JOIN exam_answers a ON a.question_id = q.id AND a.session_id = q.session_id
            WHERE q.session_id = ?
            ORDER BY q.seq ASC
            """,
            (session_id,),
        )
        rows = cursor.fetchall()
        missing = [row["seq"] for row in rows if row["is_correct"] is None]
        if missing:
            raise ConflictError(f"{len(missing)} question(s) have not been answered")

        source = "DAILY" if session.plan_id is not None else "EXAM"
        score = 0
        for row in rows:
            is_correct = row["is_correct"] == "Y"
            score += row["score_awarded"]
            record_review(
                conn,
                user_token=user_token,
                card_id=row["card_id"],
                grade=grade_for_answer(is_correct),
                source=source,
                now=now,
                is_correct=is_correct,
                answer_detail={"sessionId": session_id, "seq": row["seq"]},
            )

        updated = conn.execute(
            """
            UPDATE exam_sessions
            SET status = 'SUBMITTED', submitted_at = ?, score_total = ?
            WHERE id = ? AND status = 'ACTIVE'
            """,
            (to_db_ts(now), score, session_id),
        )
        if updated.rowcount != 1:
            raise ConflictError("exam session is no longer active")

    logger.info("submitted exam %s score=%d/%d", session_id, score, session.score_max)
    return SubmitExamResponse(id=session_id, score=score, score_max=session.score_max)


def cancel_exam(conn, user_token: str, session_id: int, now: datetime, logger) -> ExamSessionSummary:
    with transaction(conn, logger, "cancel exam"):
        session = fetch_session(conn, user_token, session_id, now)
        _require_active(session)
        conn.execute(
            "UPDATE exam_sessions SET status = 'CANCELLED' WHERE id = ? AND status = 'ACTIVE'",
            (session_id,),
        )
        session = fetch_session(conn, user_token, session_id, now)
    logger.info("cancelled exam %s", session_id)
    return session


def get_exam(conn, user_token: str, session_id: int, now: datetime, logger) -> ExamSession:
    with storage_errors(logger, "exam inquiry"):
        session = fetch_session(conn, user_token, session_id, now)
        questions = fetch_questions(conn, session_id)
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT id AS answer_id, question_id, selected_choice, typed_text, recognized_text,
                   pronunciation_score, is_correct, score_awarded, answered_at, detail
            FROM exam_answers
            WHERE session_id = ?
            """,
            (session_id,),
        )
        answers = {row["question_id"]: _row_to_answer(row) for row in cursor.fetchall()}
    return ExamSession(
        **session.model_dump(),
        questions=[
            ExamQuestionWithAnswer(**q.model_dump(), answer=answers.get(q.question_id))
            for q in questions
        ],
    )


def list_exams(conn, user_token: str, request: ExamListRequest, now: datetime, min_page_size: int, logger) -> ExamPage:
    """One page of the user's sessions, newest first.

    searchBy matches the mode or the (lazily computed) status, case-insensitively.
    """
    if request.size < min_page_size:
        raise ValidationError.for_field("size", f"size must be at least {min_page_size}")
    search = request.search_by.strip().upper()
    where = "WHERE user_token = ?"
    params: list = [user_token]
    ts = to_db_ts(now)
    if search:
        where += """
            AND (
                mode LIKE ?
                OR (CASE
                        WHEN status = 'ACTIVE' AND expires_at IS NOT NULL AND expires_at <= ? THEN 'EXPIRED'
                        ELSE status
                    END) LIKE ?
            )
        """
        params.extend([f"%{search}%", ts, f"%{search}%"])

    with storage_errors(logger, "list exams"):
        cursor = conn.cursor()
        cursor.execute(f"SELECT COUNT(*) FROM exam_sessions {where}", params)
        total = cursor.fetchone()[0] or 0
        cursor.execute(
            SESSION_SELECT + f" {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (ts, *params, request.size, (request.page - 1) * request.size),
        )
        content = [_row_to_summary(row) for row in cursor.fetchall()]
    return ExamPage(
        content=content,
        page=request.page,
        size=request.size,
        total_elements=total,
        total_pages=math.ceil(total / request.size) if total else 0,
    )
