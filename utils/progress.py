from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, Optional

from db.database import from_db_ts, to_db_ts, transaction
from utils.cards import fetch_cards_by_ids
from utils.errors import NotFoundError
from utils.srs import SrsState, apply_review, is_passing


def _row_to_state(row: sqlite3.Row) -> SrsState:
    return SrsState(
        box=int(row["box"]),
        streak=int(row["streak"]),
        last_review_at=from_db_ts(row["last_review_at"]),
        next_review_at=from_db_ts(row["next_review_at"]),
        total_reviews=int(row["total_reviews"]),
        last_grade=row["last_grade"],
    )


def get_srs_state(conn, user_token: str, card_id: int) -> Optional[SrsState]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT box, streak, last_review_at, next_review_at, total_reviews, last_grade
        FROM user_flashcard_srs
        WHERE user_token = ? AND card_id = ?
        """,
        (user_token, card_id),
    )
    row = cursor.fetchone()
    return _row_to_state(row) if row else None


def upsert_srs_state(conn, *, user_token: str, card_id: int, state: SrsState, now: datetime) -> None:
    """Write one (user, card) row; the primary-key conflict makes it last-write-wins."""
    conn.execute(
        """
        INSERT INTO user_flashcard_srs (
            user_token,
            card_id,
            box,
            streak,
            last_review_at,
            next_review_at,
            total_reviews,
            last_grade,
            created_at,
            updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_token, card_id) DO UPDATE SET
            box = excluded.box,
            streak = excluded.streak,
            last_review_at = excluded.last_review_at,
            next_review_at = excluded.next_review_at,
            total_reviews = excluded.total_reviews,
            last_grade = excluded.last_grade,
            updated_at = excluded.updated_at
        """,
        (
            user_token,
            card_id,
            state.box,
            state.streak,
            to_db_ts(state.last_review_at),
            to_db_ts(state.next_review_at),
            state.total_reviews,
            state.last_grade,
            to_db_ts(now),
            to_db_ts(now),
        ),
    )


def insert_review_log(
    conn,
    *,
    user_token: str,
    card_id: int,
    source: str,
    grade: int,
    is_correct: bool,
    answer_detail: Optional[Dict[str, Any]],
    now: datetime,
) -> None:
    conn.execute(
        """
        INSERT INTO review_log (user_token, card_id, source, grade, is_correct, answer_detail, ts)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_token,
            card_id,
            source,
            grade,
            "Y" if is_correct else "N",
            json.dumps(answer_detail or {}),
            to_db_ts(now),
        ),
    )


def record_review(
    conn,
    *,
    user_token: str,
    card_id: int,
    grade: int,
    source: str,
    now: datetime,
    is_correct: Optional[bool] = None,
    answer_detail: Optional[Dict[str, Any]] = None,
) -> SrsState:
    """Apply one review event: log it and move the (user, card) SRS row.

    Must run inside a transaction so the log row and the state change land
    together.
    """
    previous = get_srs_state(conn, user_token, card_id)
    state = apply_review(previous, grade, now)
    if is_correct is None:
        is_correct = is_passing(grade)
    insert_review_log(
        conn,
        user_token=user_token,
        card_id=card_id,
        source=source,
        grade=grade,
        is_correct=is_correct,
        answer_detail=answer_detail,
        now=now,
    )
    upsert_srs_state(conn, user_token=user_token, card_id=card_id, state=state, now=now)
    return state


def submit_review(conn, user_token: str, review, now: datetime, logger) -> SrsState:
    """Practice/daily review of a single card: review log plus SRS upsert, one transaction."""
    with transaction(conn, logger, "review submit"):
        if not fetch_cards_by_ids(conn, [review.card_id]):
            raise NotFoundError("flashcard not found")
        state = record_review(
            conn,
            user_token=user_token,
            card_id=review.card_id,
            grade=review.grade,
            source=review.source.value,
            now=now,
            is_correct=review.is_correct,
            answer_detail=review.answer_detail,
        )
    logger.info(
        "review card=%s grade=%s box=%s next=%s",
        review.card_id,
        review.grade,
        state.box,
        to_db_ts(state.next_review_at),
    )
    return state
