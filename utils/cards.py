from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from db.database import storage_errors, to_db_ts, transaction
from models.card import Card, CardCreate, CardPatch, FlashcardSet, FlashcardSetCreate
from utils.errors import NotFoundError

# CardPatch field -> column; anything else never reaches SQL
CARD_PATCH_COLUMNS = {
    "front": "front",
    "back": "back",
    "choices": "choices",
}


def row_to_card(row: sqlite3.Row) -> Card:
    card = dict(row)
    card["choices"] = json.loads(card.get("choices") or "[]")
    return Card.model_validate(card)


def ensure_user(conn, user_token: str, default_target: int = 20) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO users (user_token, daily_target) VALUES (?, ?)",
        (user_token, max(1, int(default_target))),
    )


def fetch_set(conn, set_id: int) -> Optional[FlashcardSet]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT id, owner_token, name, description, created_at
        FROM flashcard_sets
        WHERE id = ? AND deleted_at IS NULL
        """,
        (set_id,),
    )
    row = cursor.fetchone()
    return FlashcardSet.model_validate(dict(row)) if row else None


def _require_owned_set(conn, set_id: int, owner_token: str) -> FlashcardSet:
    flashcard_set = fetch_set(conn, set_id)
    if flashcard_set is None or flashcard_set.owner_token != owner_token:
        raise NotFoundError("flashcard set not found")
    return flashcard_set


def _insert_cards(conn, set_id: int, cards: List[CardCreate], now: datetime) -> None:
    cursor = conn.cursor()
    cursor.execute("SELECT COALESCE(MAX(seq), 0) FROM flashcards WHERE set_id = ?", (set_id,))
    next_seq = int(cursor.fetchone()[0]) + 1
    ts = to_db_ts(now)
    conn.executemany(
        """
        INSERT INTO flashcards (set_id, front, back, choices, seq, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (set_id, card.front, card.back, json.dumps(card.choices), next_seq + offset, ts, ts)
            for offset, card in enumerate(cards)
        ],
    )


def create_set(conn, owner_token: str, payload: FlashcardSetCreate, now: datetime, logger) -> Tuple[FlashcardSet, List[Card]]:
    with transaction(conn, logger, "create flashcard set"):
        cursor = conn.execute(
            "INSERT INTO flashcard_sets (owner_token, name, description, created_at) VALUES (?, ?, ?, ?)",
            (owner_token, payload.name, payload.description, to_db_ts(now)),
        )
        set_id = cursor.lastrowid
        if payload.cards:
            _insert_cards(conn, set_id, payload.cards, now)
    logger.info("created flashcard set %s with %d cards", set_id, len(payload.cards))
    with storage_errors(logger, "load flashcard set"):
        return fetch_set(conn, set_id), list_set_cards(conn, set_id)


def add_cards(conn, owner_token: str, set_id: int, cards: List[CardCreate], now: datetime, logger) -> List[Card]:
    with transaction(conn, logger, "add flashcards"):
        _require_owned_set(conn, set_id, owner_token)
        _insert_cards(conn, set_id, cards, now)
    with storage_errors(logger, "list flashcards"):
        return list_set_cards(conn, set_id)


def list_set_cards(conn, set_id: int) -> List[Card]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT id, set_id, front, back, choices, seq, created_at, updated_at
        FROM flashcards
        WHERE set_id = ? AND deleted_at IS NULL
        ORDER BY seq ASC, id ASC
        """,
        (set_id,),
    )
    return [row_to_card(row) for row in cursor.fetchall()]


def get_set_cards(conn, set_id: int, logger) -> List[Card]:
    with storage_errors(logger, "list flashcards"):
        if fetch_set(conn, set_id) is None:
            raise NotFoundError("flashcard set not found")
        return list_set_cards(conn, set_id)


def fetch_cards_by_ids(conn, card_ids: List[int]) -> Dict[int, Card]:
    """Live (not soft-deleted) cards keyed by id."""
    if not card_ids:
        return {}
    placeholders = ",".join("?" for _ in card_ids)
    cursor = conn.cursor()
    cursor.execute(
        f"""
        SELECT id, set_id, front, back, choices, seq, created_at, updated_at
        FROM flashcards
        WHERE id IN ({placeholders}) AND deleted_at IS NULL
        """,
        list(card_ids),
    )
    return {row["id"]: row_to_card(row) for row in cursor.fetchall()}


def _require_owned_card(conn, card_id: int, owner_token: str) -> None:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT s.owner_token
        FROM flashcards f
        JOIN flashcard_sets s ON s.id = f.set_id
        WHERE f.id = ? AND f.deleted_at IS NULL AND s.deleted_at IS NULL
        """,
        (card_id,),
    )
    row = cursor.fetchone()
    if not row or row["owner_token"] != owner_token:
        raise NotFoundError("flashcard not found")


def patch_card(conn, owner_token: str, card_id: int, patch: CardPatch, now: datetime, logger) -> Card:
    changes = patch.changes()
    assignments = []
    params = []
    for field_name, value in changes.items():
        column = CARD_PATCH_COLUMNS[field_name]
        assignments.append(f"{column} = ?")
        params.append(json.dumps(value) if field_name == "choices" else value)
    assignments.append("updated_at = ?")
    params.append(to_db_ts(now))
    with transaction(conn, logger, "patch flashcard"):
        _require_owned_card(conn, card_id, owner_token)
        conn.execute(
            f"UPDATE flashcards SET {', '.join(assignments)} WHERE id = ?",
            (*params, card_id),
        )
    with storage_errors(logger, "load flashcard"):
        return fetch_cards_by_ids(conn, [card_id])[card_id]


def delete_card(conn, owner_token: str, card_id: int, now: datetime, logger) -> None:
    with transaction(conn, logger, "delete flashcard"):
        _require_owned_card(conn, card_id, owner_token)
        conn.execute(
            "UPDATE flashcards SET deleted_at = ?, updated_at = ? WHERE id = ?",
            (to_db_ts(now), to_db_ts(now), card_id),
        )
    logger.info("soft-deleted flashcard %s", card_id)
