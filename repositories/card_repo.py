from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from core.database import next_timestamp
from models.card import Card


class CardRepository:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self) -> None:
        self.db.commit()

    def insert_card(self, *, deck_id: int, front: str, back: str) -> Card:
        card = Card(deck_id=deck_id, front=front, back=back)
        self.db.add(card)
        self._commit()
        self.db.refresh(card)
        return card

    def get_card(self, card_id: int) -> Card | None:
        return self.db.get(Card, card_id)

    def list_cards(self, deck_id: int) -> list[Card]:
        stmt = (
            select(Card)
            .where(Card.deck_id == deck_id)
            .order_by(Card.created_at, Card.id)
        )
        return list(self.db.execute(stmt).scalars())

    def update_card(self, card: Card, changes: dict[str, Any]) -> Card:
        for key, value in changes.items():
            setattr(card, key, value)
        card.updated_at = next_timestamp(card.updated_at)
        self._commit()
        self.db.refresh(card)
        return card

    def delete_card(self, card: Card) -> None:
        self.db.delete(card)
        self._commit()

    def record_answer(self, card: Card, *, is_correct: bool) -> Card:
        # single UPDATE ... SET n = n + 1, concurrent answers cannot lose an increment
        now = next_timestamp(card.updated_at)
        counter = Card.correct_count if is_correct else Card.incorrect_count
        stmt = (
            update(Card)
            .where(Card.id == card.id)
            .values({counter: counter + 1, Card.last_studied: now, Card.updated_at: now})
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self._commit()
        self.db.refresh(card)
        return card

    def answer_totals(self, deck_id: int) -> tuple[int, int]:
        stmt = select(
            func.coalesce(func.sum(Card.correct_count), 0),
            func.coalesce(func.sum(Card.incorrect_count), 0),
        ).where(Card.deck_id == deck_id)
        correct, incorrect = self.db.execute(stmt).one()
        return int(correct), int(incorrect)
