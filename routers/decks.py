from typing import Any

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import StreamingResponse

from core.results import ActionResult
from schemas.flashcard import DashboardStatsOut, DeckOut, DeckStatsOut, DeckWithCountOut
from services.csv_io import CsvFormatError, decode_upload, export_cards, export_filename, parse_cards
from services.flashcard_service import FlashcardService
from services.study_session import StudySessionRegistry
from .auth import get_caller_id, require_caller_id
from .responses import action_response, get_flashcard_service
from .study import get_study_registry

router = APIRouter(prefix="/decks", tags=["Decks"])


@router.post("", status_code=201)
async def create_deck(
    data: dict[str, Any] = Body(default={}),
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    result = svc.create_deck(caller_id, data)
    return action_response(result, DeckOut, success_status=201)


@router.get("", response_model=list[DeckWithCountOut])
async def list_decks(
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    return [
        DeckWithCountOut(**DeckOut.model_validate(deck, from_attributes=True).model_dump(), card_count=count)
        for deck, count in svc.list_decks(caller_id)
    ]


@router.get("/stats", response_model=DashboardStatsOut)
async def dashboard_stats(
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    return DashboardStatsOut(**svc.dashboard_stats(caller_id))


@router.post("/import", status_code=201)
async def import_deck(
    name: str = Form(""),
    description: str | None = Form(None),
    file: UploadFile = File(...),
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    filename = (file.filename or "").lower()
    if not filename.endswith(".csv"):
        return action_response(ActionResult.validation_failed({"file": ["Only CSV files can be imported."]}))
    try:
        rows = parse_cards(decode_upload(await file.read()))
    except CsvFormatError as exc:
        return action_response(ActionResult.validation_failed({"file": [str(exc)]}))

    result = svc.import_deck(caller_id, {"name": name, "description": description}, rows)
    return action_response(result, DeckOut, success_status=201)


@router.get("/{deck_id}", response_model=DeckOut)
async def get_deck(
    deck_id: int,
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    deck = svc.get_deck(user_id=caller_id, deck_id=deck_id)
    if deck is None:
        raise HTTPException(status_code=404, detail="Deck not found")
    return DeckOut.model_validate(deck, from_attributes=True)


@router.get("/{deck_id}/stats", response_model=DeckStatsOut)
async def deck_stats(
    deck_id: int,
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    stats = svc.deck_stats(user_id=caller_id, deck_id=deck_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Deck not found")
    return DeckStatsOut(**stats)


@router.put("/{deck_id}")
async def update_deck(
    deck_id: int,
    data: dict[str, Any] = Body(default={}),
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    result = svc.update_deck(caller_id, {**data, "deck_id": deck_id})
    return action_response(result, DeckOut)


@router.delete("/{deck_id}", status_code=204)
async def delete_deck(
    deck_id: int,
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
    registry: StudySessionRegistry = Depends(get_study_registry),
):
    result = svc.delete_deck(caller_id, {"deck_id": deck_id})
    if result.success:
        registry.close_deck(deck_id)
    return action_response(result)


@router.get("/{deck_id}/export", response_class=StreamingResponse)
async def export_deck(
    deck_id: int,
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    deck = svc.get_deck(user_id=caller_id, deck_id=deck_id)
    if deck is None:
        raise HTTPException(status_code=404, detail="Deck not found")

    cards = svc.list_cards(user_id=caller_id, deck_id=deck_id) or []
    csv_data = export_cards(cards).encode("utf-8")
    filename = export_filename(deck.name, deck.id)
    response = StreamingResponse(iter([csv_data]), media_type="text/csv; charset=utf-8")
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
