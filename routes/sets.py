from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status

from db.database import get_db, utc_now
from models.card import CardCreate, CardPatch, FlashcardSetCreate
from models.validation import parse_request
from utils.auth import require_user_token
from utils.cards import add_cards, create_set, delete_card, get_set_cards, patch_card
from utils.errors import ValidationError
from utils.logs import get_request_logger

router = APIRouter()


def _card_json(card) -> Dict[str, Any]:
    return card.model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_flashcard_set(
    payload: Dict[str, Any] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    request = parse_request(FlashcardSetCreate, payload)
    flashcard_set, cards = create_set(conn, user_token, request, utc_now(), logger)
    body = flashcard_set.model_dump(mode="json")
    body["cards"] = [_card_json(card) for card in cards]
    return body


@router.post("/{set_id}/cards", status_code=status.HTTP_201_CREATED)
async def add_flashcards(
    set_id: int,
    payload: List[Dict[str, Any]] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    if not payload:
        raise ValidationError.for_field("cards", "at least one card is required")
    cards = [parse_request(CardCreate, item) for item in payload]
    return [_card_json(card) for card in add_cards(conn, user_token, set_id, cards, utc_now(), logger)]


@router.get("/{set_id}/cards")
async def list_flashcards(
    set_id: int,
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    return [_card_json(card) for card in get_set_cards(conn, set_id, logger)]


@router.patch("/cards/{card_id}")
async def update_flashcard(
    card_id: int,
    payload: Dict[str, Any] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    patch = parse_request(CardPatch, payload)
    return _card_json(patch_card(conn, user_token, card_id, patch, utc_now(), logger))


@router.delete("/cards/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_flashcard(
    card_id: int,
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    delete_card(conn, user_token, card_id, utc_now(), logger)
