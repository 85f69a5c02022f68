from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from schemas.flashcard import CardOut
from services.flashcard_service import CARD_NOT_FOUND, DECK_NOT_FOUND, FlashcardService
from .auth import get_caller_id, require_caller_id
from .responses import action_response, get_flashcard_service

router = APIRouter(prefix="/decks/{deck_id}/cards", tags=["Cards"])


@router.get("", response_model=list[CardOut])
async def list_cards(
    deck_id: int,
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    cards = svc.list_cards(user_id=caller_id, deck_id=deck_id)
    if cards is None:
        raise HTTPException(status_code=404, detail=DECK_NOT_FOUND)
    return cards


@router.post("", status_code=201)
async def create_card(
    deck_id: int,
    data: dict[str, Any] = Body(default={}),
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    result = svc.create_card(caller_id, {**data, "deck_id": deck_id})
    return action_response(result, CardOut, success_status=201)


@router.get("/{card_id}", response_model=CardOut)
async def get_card(
    deck_id: int,
    card_id: int,
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    card = svc.get_card(user_id=caller_id, deck_id=deck_id, card_id=card_id)
    if card is None:
        raise HTTPException(status_code=404, detail=CARD_NOT_FOUND)
    return card


@router.put("/{card_id}")
async def update_card(
    deck_id: int,
    card_id: int,
    data: dict[str, Any] = Body(default={}),
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    result = svc.update_card(caller_id, {**data, "deck_id": deck_id, "card_id": card_id})
    return action_response(result, CardOut)


@router.delete("/{card_id}", status_code=204)
async def delete_card(
    deck_id: int,
    card_id: int,
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    result = svc.delete_card(caller_id, {"deck_id": deck_id, "card_id": card_id})
    return action_response(result)


@router.post("/{card_id}/answer")
async def record_answer(
    deck_id: int,
    card_id: int,
    data: dict[str, Any] = Body(default={}),
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    result = svc.record_answer(caller_id, {**data, "deck_id": deck_id, "card_id": card_id})
    return action_response(result, CardOut)
