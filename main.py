import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

import models  # noqa: F401  registers every table on Base.metadata
from core.config import settings
from core.database import Base, SessionLocal, engine
from core.invalidation import DASHBOARD_VIEW, deck_view, invalidator, study_view
from core.logging_config import configure_logging
from core.results import ActionResult
from repositories.refresh_token_repo import RefreshTokenRepository
from routers import auth as auth_router
from routers import cards as cards_router
from routers import decks as decks_router
from routers import study as study_router
from routers.auth import get_caller_id, security
from routers.responses import get_flashcard_service
from services.flashcard_service import FlashcardService

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
    task = asyncio.create_task(background_task())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(title="Flashcards", lifespan=lifespan)
security.handle_errors(app)
templates = Jinja2Templates(directory=BASE_DIR / "templates")
app.mount("/static", StaticFiles(directory=BASE_DIR / "frontend"), name="static")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router)
app.include_router(decks_router.router)
app.include_router(cards_router.router)
app.include_router(study_router.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        details.setdefault(loc[-1] if loc else "body", []).append(error.get("msg", "Invalid value"))
    result = ActionResult.validation_failed(details)
    return JSONResponse(status_code=result.status_code, content=result.to_dict())


async def background_task():
    while True:
        await asyncio.sleep(settings.STUDY_SESSION_PRUNE_INTERVAL_SECONDS)
        study_router.registry.prune_idle()
        db = SessionLocal()
        try:
            purged = RefreshTokenRepository(db).purge_expired()
            if purged:
                logger.info("Purged %d expired refresh tokens", purged)
        except Exception:
            logger.exception("Refresh token cleanup failed")
        finally:
            db.close()


def render_cached(
    request: Request,
    caller_id: str,
    keys: list[str],
    fingerprint: list,
    name: str,
    context: dict,
) -> Response:
    """Render a page with an ETag built from the versions of ``keys`` and the rendered rows."""
    etag = invalidator.etag(caller_id, keys, fingerprint)
    if request.headers.get("if-none-match") == etag:
        return Response(status_code=304, headers={"ETag": etag})
    response = templates.TemplateResponse(request, name, context)
    response.headers["ETag"] = etag
    response.headers["Cache-Control"] = "private, no-cache"
    return response


@app.get("/", name="index")
async def index(caller_id: str | None = Depends(get_caller_id)):
    return RedirectResponse("/dashboard" if caller_id else "/auth", status_code=303)


@app.get("/auth", response_class=HTMLResponse, name="auth_page")
async def auth_page(request: Request):
    return templates.TemplateResponse(request, "auth.html", {})


@app.get("/dashboard", response_class=HTMLResponse, name="dashboard")
async def dashboard(
    request: Request,
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    if caller_id is None:
        return RedirectResponse("/auth", status_code=303)
    decks = svc.list_decks(caller_id)
    return render_cached(
        request,
        caller_id,
        [DASHBOARD_VIEW],
        [(deck.id, deck.updated_at, count) for deck, count in decks],
        "dashboard.html",
        {
            "active_page": "dashboard",
            "decks": decks,
            "stats": svc.dashboard_stats(caller_id),
        },
    )


@app.get("/dashboard/decks/{deck_id}", response_class=HTMLResponse, name="deck_page")
async def deck_page(
    deck_id: int,
    request: Request,
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    if caller_id is None:
        return RedirectResponse("/auth", status_code=303)
    deck = svc.get_deck(user_id=caller_id, deck_id=deck_id)
    if deck is None:
        raise HTTPException(status_code=404, detail="Deck not found")
    cards = svc.list_cards(user_id=caller_id, deck_id=deck_id)
    return render_cached(
        request,
        caller_id,
        [deck_view(deck_id)],
        [deck.updated_at] + [(card.id, card.updated_at) for card in cards],
        "deck.html",
        {
            "active_page": "dashboard",
            "deck": deck,
            "cards": cards,
            "stats": svc.deck_stats(user_id=caller_id, deck_id=deck_id),
        },
    )


@app.get("/dashboard/decks/{deck_id}/study", response_class=HTMLResponse, name="study_page")
async def study_page(
    deck_id: int,
    request: Request,
    caller_id: str | None = Depends(get_caller_id),
    svc: FlashcardService = Depends(get_flashcard_service),
):
    if caller_id is None:
        return RedirectResponse("/auth", status_code=303)
    deck = svc.get_deck(user_id=caller_id, deck_id=deck_id)
    if deck is None:
        raise HTTPException(status_code=404, detail="Deck not found")
    cards = svc.list_cards(user_id=caller_id, deck_id=deck_id)
    name = "study.html" if cards else "study_empty.html"
    return render_cached(
        request,
        caller_id,
        [study_view(deck_id)],
        [deck.updated_at, len(cards)],
        name,
        {
            "active_page": "study",
            "deck": deck,
            "total": len(cards),
            "advance_delay_ms": int(settings.STUDY_ADVANCE_DELAY_SECONDS * 1000),
        },
    )


@app.get("/status")
async def status():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("main:app", reload=True, host="127.0.0.1", port=8000)
