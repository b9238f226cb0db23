"""Daily review plans.

One plan per (user, calendar date). Cards that are due come first, ranked by
how overdue and how weak they are; the rest of the daily target is filled
with cards the user has never reviewed from their daily (else default) set.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from db.database import from_db_ts, storage_errors, to_db_ts, transaction
from models.plan import DailyPlan, DailyPlanCard, DailyPlanRun, DailyPlanSettingsPatch, PlanRunStatus
from utils.cards import ensure_user, fetch_cards_by_ids, fetch_set
from utils.errors import ConflictError, NotFoundError, ValidationError

# DailyPlanSettingsPatch field -> users column
SETTINGS_COLUMNS = {
    "daily_active": "daily_active",
    "daily_target": "daily_target",
    "daily_set_id": "daily_set_id",
    "default_set_id": "default_set_id",
}


@dataclass(frozen=True)
class DueCandidate:
    card_id: int
    box: int
    next_review_at: Optional[datetime]
    last_review_at: Optional[datetime]


def _nulls_first(value: Optional[datetime]) -> Tuple[int, Optional[datetime]]:
    return (0, None) if value is None else (1, value)


def due_sort_key(candidate: DueCandidate):
    next_flag, next_at = _nulls_first(candidate.next_review_at)
    last_flag, last_at = _nulls_first(candidate.last_review_at)
    return (
        next_flag,
        next_at or datetime.min,
        candidate.box,
        last_flag,
        last_at or datetime.min,
        candidate.card_id,
    )


def rank_due(candidates: Iterable[DueCandidate], now: datetime) -> List[DueCandidate]:
    """Due candidates (no next review, or next review at/before now) in review order."""
    due = [c for c in candidates if c.next_review_at is None or c.next_review_at <= now]
    return sorted(due, key=due_sort_key)


def select_plan_cards(due: List[DueCandidate], new_card_ids: Iterable[int], target: int) -> List[int]:
    """Due cards first, then unseen cards, capped at target with no repeats."""
    if target <= 0:
        return []
    selected: List[int] = []
    seen = set()
    for candidate in due:
        if len(selected) >= target:
            return selected
        if candidate.card_id not in seen:
            selected.append(candidate.card_id)
            seen.add(candidate.card_id)
    for card_id in new_card_ids:
        if len(selected) >= target:
            break
        if card_id not in seen:
            selected.append(card_id)
            seen.add(card_id)
    return selected


def plan_date_for(now: datetime, timezone_name: str) -> date:
    return now.astimezone(ZoneInfo(timezone_name)).date()


def fetch_active_users(conn) -> List[Dict]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT user_token, daily_target, daily_set_id, default_set_id
        FROM users
        WHERE daily_active = 1
        ORDER BY id
        """
    )
    return [dict(row) for row in cursor.fetchall()]


def fetch_user_settings(conn, user_token: str) -> Optional[Dict]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT user_token, daily_active, daily_target, daily_set_id, default_set_id
        FROM users
        WHERE user_token = ?
        """,
        (user_token,),
    )
    row = cursor.fetchone()
    return dict(row) if row else None


def fetch_due_candidates(conn, user_token: str, now: datetime) -> List[DueCandidate]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT s.card_id, s.box, s.next_review_at, s.last_review_at
        FROM user_flashcard_srs s
        JOIN flashcards f ON f.id = s.card_id
        WHERE s.user_token = ?
            AND f.deleted_at IS NULL
            AND (s.next_review_at IS NULL OR s.next_review_at <= ?)
        """,
        (user_token, to_db_ts(now)),
    )
    return [
        DueCandidate(
            card_id=row["card_id"],
            box=row["box"],
            next_review_at=from_db_ts(row["next_review_at"]),
            last_review_at=from_db_ts(row["last_review_at"]),
        )
        for row in cursor.fetchall()
    ]


def fetch_unseen_card_ids(conn, user_token: str, set_id: int, limit: int) -> List[int]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT f.id
        FROM flashcards f
        JOIN flashcard_sets fs ON fs.id = f.set_id
        WHERE f.set_id = ?
            AND f.deleted_at IS NULL
            AND fs.deleted_at IS NULL
            AND NOT EXISTS (
                SELECT 1 FROM user_flashcard_srs s
                WHERE s.user_token = ? AND s.card_id = f.id
            )
        ORDER BY f.seq ASC, f.id ASC
        LIMIT ?
        """,
        (set_id, user_token, limit),
    )
    return [row[0] for row in cursor.fetchall()]


def build_plan_card_ids(conn, user: Dict, now: datetime) -> List[int]:
    target = int(user["daily_target"])
    due = rank_due(fetch_due_candidates(conn, user["user_token"], now), now)[:target]
    new_ids: List[int] = []
    source_set_id = user.get("daily_set_id") or user.get("default_set_id")
    if len(due) < target and source_set_id:
        new_ids = fetch_unseen_card_ids(conn, user["user_token"], source_set_id, target)
    return select_plan_cards(due, new_ids, target)


def batch_ran_for(conn, plan_date: date) -> bool:
    cursor = conn.cursor()
    cursor.execute("SELECT 1 FROM daily_plan_runs WHERE plan_date = ?", (plan_date.isoformat(),))
    return cursor.fetchone() is not None


def record_batch_run(conn, plan_date: date, users_planned: int, cards_planned: int, now: datetime) -> None:
    conn.execute(
        """
        INSERT INTO daily_plan_runs (plan_date, users_planned, cards_planned, created_at)
        VALUES (?, ?, ?, ?)
        """,
        (plan_date.isoformat(), users_planned, cards_planned, to_db_ts(now)),
    )


def plan_started(conn, plan_id: int) -> bool:
    """True once the user studied from this plan.

    That is an exam opened from the plan, a DAILY review, or a review of one
    of the plan's cards, made since the plan was first created.
    """
    cursor = conn.cursor()
    cursor.execute("SELECT 1 FROM exam_sessions WHERE plan_id = ? LIMIT 1", (plan_id,))
    if cursor.fetchone():
        return True
    cursor.execute(
        """
        SELECT 1
        FROM daily_plans p
        JOIN review_log r ON r.user_token = p.user_token AND r.ts >= p.created_at
        WHERE p.id = ?
            AND (
                r.source = 'DAILY'
                OR r.card_id IN (SELECT card_id FROM daily_plan_cards WHERE plan_id = p.id)
            )
        LIMIT 1
        """,
        (plan_id,),
    )
    return cursor.fetchone() is not None


def upsert_daily_plan(conn, user_token: str, plan_date: date, card_ids: List[int], now: datetime) -> int:
    """Create or overwrite the (user, date) plan with card_ids in order."""
    conn.execute(
        """
        INSERT INTO daily_plans (user_token, plan_date, created_at, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(user_token, plan_date) DO UPDATE SET updated_at = excluded.updated_at
        """,
        (user_token, plan_date.isoformat(), to_db_ts(now), to_db_ts(now)),
    )
    cursor = conn.cursor()
    cursor.execute(
        "SELECT id FROM daily_plans WHERE user_token = ? AND plan_date = ?",
        (user_token, plan_date.isoformat()),
    )
    plan_id = cursor.fetchone()[0]
    conn.execute("DELETE FROM daily_plan_cards WHERE plan_id = ?", (plan_id,))
    conn.executemany(
        "INSERT INTO daily_plan_cards (plan_id, position, card_id) VALUES (?, ?, ?)",
        [(plan_id, position, card_id) for position, card_id in enumerate(card_ids, start=1)],
    )
    return plan_id


def generate_daily_plans(conn, now: datetime, timezone_name: str, logger) -> DailyPlanRun:
    """Batch job: one plan per active user for today's date.

    The date guard runs once for the whole batch against the run marker;
    when the batch already ran for today nothing is touched and
    ALREADY_PLANNED is returned. A plan a user refreshed earlier today is
    recomputed, unless they already started studying from it.
    """
    plan_date = plan_date_for(now, timezone_name)
    with transaction(conn, logger, "generate daily plans"):
        if batch_ran_for(conn, plan_date):
            logger.info("daily plans for %s already generated", plan_date)
            return DailyPlanRun(status=PlanRunStatus.ALREADY_PLANNED, plan_date=plan_date)
        users_planned = 0
        cards_planned = 0
        for user in fetch_active_users(conn):
            existing = fetch_plan_for_date(conn, user["user_token"], plan_date)
            if existing is not None and plan_started(conn, existing.id):
                logger.info("keeping started plan %s for %s", existing.id, user["user_token"])
                continue
            card_ids = build_plan_card_ids(conn, user, now)
            upsert_daily_plan(conn, user["user_token"], plan_date, card_ids, now)
            users_planned += 1
            cards_planned += len(card_ids)
        record_batch_run(conn, plan_date, users_planned, cards_planned, now)
    logger.info("generated %d daily plans (%d cards) for %s", users_planned, cards_planned, plan_date)
    return DailyPlanRun(
        status=PlanRunStatus.PLANNED,
        plan_date=plan_date,
        users_planned=users_planned,
        cards_planned=cards_planned,
    )


def fetch_plan(conn, plan_id: int) -> Optional[DailyPlan]:
    cursor = conn.cursor()
    cursor.execute("SELECT id, user_token, plan_date FROM daily_plans WHERE id = ?", (plan_id,))
    row = cursor.fetchone()
    if not row:
        return None
    return _load_plan(conn, row)


def fetch_plan_for_date(conn, user_token: str, plan_date: date) -> Optional[DailyPlan]:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT id, user_token, plan_date FROM daily_plans WHERE user_token = ? AND plan_date = ?",
        (user_token, plan_date.isoformat()),
    )
    row = cursor.fetchone()
    if not row:
        return None
    return _load_plan(conn, row)


def _load_plan(conn, row) -> DailyPlan:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT card_id FROM daily_plan_cards WHERE plan_id = ? ORDER BY position ASC",
        (row["id"],),
    )
    return DailyPlan(
        id=row["id"],
        user_token=row["user_token"],
        plan_date=date.fromisoformat(row["plan_date"]),
        card_ids=[r[0] for r in cursor.fetchall()],
    )


def refresh_daily_plan(conn, user_token: str, now: datetime, timezone_name: str, logger) -> DailyPlan:
    """Recompute today's plan for one user, unless they already started on it."""
    plan_date = plan_date_for(now, timezone_name)
    with transaction(conn, logger, "refresh daily plan"):
        user = fetch_user_settings(conn, user_token)
        if user is None or not user["daily_active"]:
            raise ConflictError("daily review is not enabled")
        existing = fetch_plan_for_date(conn, user_token, plan_date)
        if existing is not None and plan_started(conn, existing.id):
            raise ConflictError("today's plan has already been started")
        card_ids = build_plan_card_ids(conn, user, now)
        plan_id = upsert_daily_plan(conn, user_token, plan_date, card_ids, now)
    logger.info("refreshed daily plan %s with %d cards", plan_id, len(card_ids))
    return DailyPlan(id=plan_id, user_token=user_token, plan_date=plan_date, card_ids=card_ids)


def get_today_plan_cards(conn, user_token: str, now: datetime, timezone_name: str, logger) -> List[DailyPlanCard]:
    plan_date = plan_date_for(now, timezone_name)
    with storage_errors(logger, "daily plan inquiry"):
        plan = fetch_plan_for_date(conn, user_token, plan_date)
        if plan is None:
            raise NotFoundError("no daily plan for today")
        cards = fetch_cards_by_ids(conn, plan.card_ids)
        cursor = conn.cursor()
        cursor.execute("SELECT card_id, box FROM user_flashcard_srs WHERE user_token = ?", (user_token,))
        boxes = {row["card_id"]: row["box"] for row in cursor.fetchall()}
    result = []
    for position, card_id in enumerate(plan.card_ids, start=1):
        card = cards.get(card_id)
        if card is None:
            continue
        result.append(
            DailyPlanCard(
                daily_plan_id=plan.id,
                id=card.id,
                front=card.front,
                back=card.back,
                choices=card.choices,
                seq=position,
                box=boxes.get(card_id),
            )
        )
    return result


def update_plan_settings(conn, user_token: str, patch: DailyPlanSettingsPatch, default_target: int, logger) -> Dict:
    changes = patch.changes()
    with transaction(conn, logger, "update daily plan settings"):
        for field_name in ("daily_set_id", "default_set_id"):
            set_id = changes.get(field_name)
            if set_id is not None and fetch_set(conn, set_id) is None:
                raise ValidationError.for_field(field_name, "flashcard set not found")
        ensure_user(conn, user_token, default_target)
        assignments = []
        params = []
        for field_name, value in changes.items():
            assignments.append(f"{SETTINGS_COLUMNS[field_name]} = ?")
            params.append(int(value) if isinstance(value, bool) else value)
        conn.execute(
            f"UPDATE users SET {', '.join(assignments)} WHERE user_token = ?",
            (*params, user_token),
        )
        settings = fetch_user_settings(conn, user_token)
    settings["daily_active"] = bool(settings["daily_active"])
    return settings
