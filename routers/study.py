import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from core.config import settings
from core.results import ActionResult
from schemas.study import AnswerIn, StudySessionOut
from services.flashcard_service import DECK_NOT_FOUND, FlashcardService
from services.study_session import (
    EmptyDeckError,
    StudySession,
    StudySessionError,
    StudySessionRegistry,
)
from .auth import require_caller_id
from .responses import get_flashcard_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/study", tags=["Study"])

registry = StudySessionRegistry(
    ttl_seconds=settings.STUDY_SESSION_TTL_MINUTES * 60,
    advance_delay=settings.STUDY_ADVANCE_DELAY_SECONDS,
)


def get_study_registry() -> StudySessionRegistry:
    return registry


def _session_or_404(registry: StudySessionRegistry, caller_id: str, session_id: str) -> StudySession:
    session = registry.get(caller_id, session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Study session not found")
    return session


def _state(session: StudySession) -> StudySessionOut:
    return StudySessionOut(**session.to_dict())


def _conflict(session: StudySession, exc: StudySessionError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "session": _state(session).model_dump(mode="json")},
    )


@router.post("/decks/{deck_id}/sessions", response_model=StudySessionOut, status_code=201)
async def open_session(
    deck_id: int,
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
    registry: StudySessionRegistry = Depends(get_study_registry),
):
    cards = svc.list_cards(user_id=caller_id, deck_id=deck_id)
    if cards is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=DECK_NOT_FOUND)
    try:
        session = registry.open(caller_id, deck_id, cards)
    except EmptyDeckError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _state(session)


@router.get("/sessions/{session_id}", response_model=StudySessionOut)
async def get_session(
    session_id: str,
    caller_id: str = Depends(require_caller_id),
    registry: StudySessionRegistry = Depends(get_study_registry),
):
    session = _session_or_404(registry, caller_id, session_id)
    session.touch()
    return _state(session)


def _transition(name: str):
    async def endpoint(
        session_id: str,
        caller_id: str = Depends(require_caller_id),
        registry: StudySessionRegistry = Depends(get_study_registry),
    ):
        session = _session_or_404(registry, caller_id, session_id)
        try:
            getattr(session, name)()
        except StudySessionError as exc:
            return _conflict(session, exc)
        return _state(session)

    endpoint.__name__ = f"{name}_session"
    return endpoint


for _name in ("advance", "retreat", "reveal", "shuffle", "restart"):
    router.add_api_route(
        f"/sessions/{{session_id}}/{_name}",
        _transition(_name),
        methods=["POST"],
        response_model=StudySessionOut,
    )


@router.post("/sessions/{session_id}/answer", response_model=StudySessionOut)
async def answer(
    session_id: str,
    data: AnswerIn,
    caller_id: str = Depends(require_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
    registry: StudySessionRegistry = Depends(get_study_registry),
):
    session = _session_or_404(registry, caller_id, session_id)

    async def record(card_id: int, deck_id: int, is_correct: bool) -> ActionResult:
        return await run_in_threadpool(
            svc.record_answer,
            caller_id,
            {"card_id": card_id, "deck_id": deck_id, "is_correct": is_correct},
        )

    try:
        result = await session.submit_answer(data.is_correct, record)
    except StudySessionError as exc:
        return _conflict(session, exc)

    if not result.success:
        logger.warning("Answer for session %s failed: %s", session_id, result.message)
        return JSONResponse(status_code=result.status_code, content=result.to_dict())
    return _state(session)


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(
    session_id: str,
    caller_id: str = Depends(require_caller_id),
    registry: StudySessionRegistry = Depends(get_study_registry),
):
    if not registry.close(caller_id, session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Study session not found")
    return Response(status_code=204)
