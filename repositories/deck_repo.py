from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.database import next_timestamp
from models.card import Card
from models.deck import Deck


class DeckRepository:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self) -> None:
        self.db.commit()

    def insert_deck(self, *, user_id: str, name: str, description: str | None) -> Deck:
        deck = Deck(user_id=user_id, name=name, description=description)
        self.db.add(deck)
        self._commit()
        self.db.refresh(deck)
        return deck

    def insert_deck_with_cards(
        self,
        *,
        user_id: str,
        name: str,
        description: str | None,
        cards: list[tuple[str, str]],
    ) -> Deck:
        deck = Deck(user_id=user_id, name=name, description=description)
        deck.cards = [Card(front=front, back=back) for front, back in cards]
        self.db.add(deck)
        self._commit()
        self.db.refresh(deck)
        return deck

    def get_deck(self, deck_id: int, user_id: str) -> Deck | None:
        stmt = select(Deck).where(
            Deck.id == deck_id,
            Deck.user_id == user_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_decks_with_card_counts(self, user_id: str) -> list[tuple[Deck, int]]:
        card_count = func.count(Card.id)
        stmt = (
            select(Deck, card_count)
            .outerjoin(Card, Card.deck_id == Deck.id)
            .where(Deck.user_id == user_id)
            .group_by(Deck.id)
            .order_by(Deck.created_at.desc(), Deck.id.desc())
        )
        return [(deck, int(count or 0)) for deck, count in self.db.execute(stmt).all()]

    def update_deck(self, deck: Deck, changes: dict[str, Any]) -> Deck:
        for key, value in changes.items():
            setattr(deck, key, value)
        deck.updated_at = next_timestamp(deck.updated_at)
        self._commit()
        self.db.refresh(deck)
        return deck

    def delete_deck(self, deck: Deck) -> None:
        self.db.delete(deck)
        self._commit()
