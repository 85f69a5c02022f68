import logging
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from core.invalidation import DASHBOARD_VIEW, ViewInvalidator, deck_view, invalidator, study_view
from core.results import ActionResult
from models.card import Card
from models.deck import Deck
from repositories.card_repo import CardRepository
from repositories.deck_repo import DeckRepository
from schemas.errors import field_errors
from schemas.flashcard import (
    CardContentIn,
    CardCreateIn,
    CardDeleteIn,
    CardUpdateIn,
    DeckCreateIn,
    DeckDeleteIn,
    DeckImportIn,
    DeckUpdateIn,
    RecordAnswerIn,
)

logger = logging.getLogger(__name__)

DECK_NOT_FOUND = "Deck not found or unauthorized"
CARD_NOT_FOUND = "Card not found or does not belong to this deck"

Handler = Callable[[str, Any], tuple[ActionResult, list[str]]]


class FlashcardService:
    """Deck and card operations for one caller.

    Every mutation runs the same sequence: validate the raw input, require a
    caller identity, check ownership (deck, then card membership), apply one
    write, then tell the view invalidator which pages went stale. Failures
    come back as ``ActionResult`` values; nothing is raised to the caller.
    """

    def __init__(self, db: Session, views: ViewInvalidator | None = None):
        self.db = db
        self.deck_repo = DeckRepository(db)
        self.card_repo = CardRepository(db)
        self.views = views or invalidator

    # ------------------------------------------------------------------
    # mutations

    def create_deck(self, user_id: str | None, data: Mapping[str, Any]) -> ActionResult[Deck]:
        return self._run("create deck", DeckCreateIn, user_id, data, self._create_deck)

    def update_deck(self, user_id: str | None, data: Mapping[str, Any]) -> ActionResult[Deck]:
        return self._run("update deck", DeckUpdateIn, user_id, data, self._update_deck)

    def delete_deck(self, user_id: str | None, data: Mapping[str, Any]) -> ActionResult[None]:
        return self._run("delete deck", DeckDeleteIn, user_id, data, self._delete_deck)

    def create_card(self, user_id: str | None, data: Mapping[str, Any]) -> ActionResult[Card]:
        return self._run("create card", CardCreateIn, user_id, data, self._create_card)

    def update_card(self, user_id: str | None, data: Mapping[str, Any]) -> ActionResult[Card]:
        return self._run("update card", CardUpdateIn, user_id, data, self._update_card)

    def delete_card(self, user_id: str | None, data: Mapping[str, Any]) -> ActionResult[None]:
        return self._run("delete card", CardDeleteIn, user_id, data, self._delete_card)

    def record_answer(self, user_id: str | None, data: Mapping[str, Any]) -> ActionResult[Card]:
        return self._run("record answer", RecordAnswerIn, user_id, data, self._record_answer)

    def import_deck(
        self,
        user_id: str | None,
        data: Mapping[str, Any],
        rows: list[Mapping[str, Any]],
    ) -> ActionResult[Deck]:
        """Create a deck together with its cards in one transaction."""
        try:
            payload = DeckImportIn.model_validate(data)
        except ValidationError as exc:
            return ActionResult.validation_failed(field_errors(DeckImportIn, exc))

        cards, row_errors = [], []
        for row in rows:
            row_number = row.get("row", len(cards) + len(row_errors) + 1)
            try:
                content = CardContentIn.model_validate({"front": row.get("front"), "back": row.get("back")})
            except ValidationError as exc:
                for messages in field_errors(CardContentIn, exc).values():
                    row_errors.extend(f"Row {row_number}: {message}" for message in messages)
                continue
            cards.append((content.front, content.back))

        if row_errors:
            return ActionResult.validation_failed({"file": row_errors})
        if not cards:
            return ActionResult.validation_failed({"file": ["CSV must contain at least one card"]})

        return self._run(
            "import deck",
            DeckImportIn,
            user_id,
            payload.model_dump(),
            lambda owner, validated: self._import_deck(owner, validated, cards),
        )

    # ------------------------------------------------------------------
    # queries

    def get_deck(self, *, user_id: str, deck_id: int) -> Deck | None:
        return self.deck_repo.get_deck(deck_id, user_id)

    def list_decks(self, user_id: str) -> list[tuple[Deck, int]]:
        return self.deck_repo.list_decks_with_card_counts(user_id)

    def list_cards(self, *, user_id: str, deck_id: int) -> list[Card] | None:
        if self.deck_repo.get_deck(deck_id, user_id) is None:
            return None
        return self.card_repo.list_cards(deck_id)

    def get_card(self, *, user_id: str, deck_id: int, card_id: int) -> Card | None:
        return self._owned_card(user_id, deck_id, card_id)

    def dashboard_stats(self, user_id: str) -> dict[str, int]:
        decks = self.deck_repo.list_decks_with_card_counts(user_id)
        total_cards = sum(count for _, count in decks)
        average = round(total_cards / len(decks)) if decks else 0
        return {
            "total_decks": len(decks),
            "total_cards": total_cards,
            "average_cards_per_deck": average,
        }

    def deck_stats(self, *, user_id: str, deck_id: int) -> dict[str, Any] | None:
        deck = self.deck_repo.get_deck(deck_id, user_id)
        if deck is None:
            return None
        correct, incorrect = self.card_repo.answer_totals(deck_id)
        answered = correct + incorrect
        return {
            "total_cards": len(self.card_repo.list_cards(deck_id)),
            "correct_answers": correct,
            "incorrect_answers": incorrect,
            "accuracy": round(correct / answered * 100, 1) if answered else 0.0,
            "created_at": deck.created_at,
            "updated_at": deck.updated_at,
        }

    # ------------------------------------------------------------------
    # cascade

    def _run(
        self,
        action: str,
        schema: type[BaseModel],
        user_id: str | None,
        data: Mapping[str, Any],
        handler: Handler,
    ) -> ActionResult:
        try:
            payload = schema.model_validate(data)
        except ValidationError as exc:
            return ActionResult.validation_failed(field_errors(schema, exc))

        if not user_id:
            return ActionResult.unauthorized()

        try:
            result, views = handler(user_id, payload)
        except Exception:
            self.db.rollback()
            logger.exception("Error trying to %s", action)
            return ActionResult.internal(f"Failed to {action}")

        if result.success:
            self._invalidate(views)
        return result

    def _invalidate(self, views: list[str]) -> None:
        try:
            self.views.invalidate(views)
        except Exception:
            logger.exception("Could not invalidate views %s", views)

    def _owned_card(self, user_id: str, deck_id: int, card_id: int) -> Card | None:
        card = self._card_or_failure(user_id, deck_id, card_id)
        return None if isinstance(card, ActionResult) else card

    def _card_or_failure(self, user_id: str, deck_id: int, card_id: int) -> Card | ActionResult:
        if self.deck_repo.get_deck(deck_id, user_id) is None:
            return ActionResult.not_found(DECK_NOT_FOUND)
        card = self.card_repo.get_card(card_id)
        if card is None or card.deck_id != deck_id:
            return ActionResult.not_found(CARD_NOT_FOUND)
        return card

    # ------------------------------------------------------------------
    # handlers

    def _create_deck(self, user_id: str, payload: DeckCreateIn):
        deck = self.deck_repo.insert_deck(
            user_id=user_id,
            name=payload.name,
            description=payload.description,
        )
        logger.info("Created deck %s", deck.id)
        return ActionResult.ok(deck), [DASHBOARD_VIEW]

    def _update_deck(self, user_id: str, payload: DeckUpdateIn):
        deck = self.deck_repo.get_deck(payload.deck_id, user_id)
        if deck is None:
            return ActionResult.not_found(DECK_NOT_FOUND), []
        changes = payload.model_dump(exclude_unset=True, exclude={"deck_id"})
        deck = self.deck_repo.update_deck(deck, changes)
        logger.info("Updated deck %s", deck.id)
        return ActionResult.ok(deck), [DASHBOARD_VIEW, deck_view(deck.id), study_view(deck.id)]

    def _delete_deck(self, user_id: str, payload: DeckDeleteIn):
        deck = self.deck_repo.get_deck(payload.deck_id, user_id)
        if deck is None:
            return ActionResult.not_found(DECK_NOT_FOUND), []
        self.deck_repo.delete_deck(deck)
        logger.info("Deleted deck %s", payload.deck_id)
        self.views.forget([deck_view(payload.deck_id), study_view(payload.deck_id)])
        return ActionResult.ok(), [DASHBOARD_VIEW]

    def _create_card(self, user_id: str, payload: CardCreateIn):
        if self.deck_repo.get_deck(payload.deck_id, user_id) is None:
            return ActionResult.not_found(DECK_NOT_FOUND), []
        card = self.card_repo.insert_card(
            deck_id=payload.deck_id,
            front=payload.front,
            back=payload.back,
        )
        logger.info("Created card %s in deck %s", card.id, payload.deck_id)
        return ActionResult.ok(card), [DASHBOARD_VIEW, deck_view(payload.deck_id), study_view(payload.deck_id)]

    def _update_card(self, user_id: str, payload: CardUpdateIn):
        card = self._card_or_failure(user_id, payload.deck_id, payload.card_id)
        if isinstance(card, ActionResult):
            return card, []
        changes = payload.model_dump(exclude_unset=True, exclude={"card_id", "deck_id"})
        card = self.card_repo.update_card(card, changes)
        logger.info("Updated card %s", card.id)
        return ActionResult.ok(card), [deck_view(payload.deck_id), study_view(payload.deck_id)]

    def _delete_card(self, user_id: str, payload: CardDeleteIn):
        card = self._card_or_failure(user_id, payload.deck_id, payload.card_id)
        if isinstance(card, ActionResult):
            return card, []
        self.card_repo.delete_card(card)
        logger.info("Deleted card %s from deck %s", payload.card_id, payload.deck_id)
        return ActionResult.ok(), [DASHBOARD_VIEW, deck_view(payload.deck_id), study_view(payload.deck_id)]

    def _record_answer(self, user_id: str, payload: RecordAnswerIn):
        card = self._card_or_failure(user_id, payload.deck_id, payload.card_id)
        if isinstance(card, ActionResult):
            return card, []
        card = self.card_repo.record_answer(card, is_correct=payload.is_correct)
        return ActionResult.ok(card), [deck_view(payload.deck_id), study_view(payload.deck_id)]

    def _import_deck(self, user_id: str, payload: DeckImportIn, cards: list[tuple[str, str]]):
        deck = self.deck_repo.insert_deck_with_cards(
            user_id=user_id,
            name=payload.name,
            description=payload.description,
            cards=cards,
        )
        logger.info("Imported deck %s with %d cards", deck.id, len(cards))
        return ActionResult.ok(deck), [DASHBOARD_VIEW]
