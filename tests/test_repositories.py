from datetime import timedelta

from core.database import SessionLocal, next_timestamp, utcnow
from models.card import Card
from repositories.card_repo import CardRepository
from repositories.deck_repo import DeckRepository

from .conftest import OWNER


def test_next_timestamp_moves_past_a_future_value():
    ahead = utcnow() + timedelta(seconds=5)
    assert next_timestamp(ahead) == ahead + timedelta(microseconds=1)
    assert next_timestamp(None) <= utcnow()


def test_record_answer_from_two_sessions_keeps_both_increments(db):
    deck = DeckRepository(db).insert_deck(user_id=OWNER, name="Race", description=None)
    card = CardRepository(db).insert_card(deck_id=deck.id, front="q", back="a")

    first, second = SessionLocal(), SessionLocal()
    try:
        # both sessions read 0/0 before either writes
        stale_a = first.get(Card, card.id)
        stale_b = second.get(Card, card.id)
        assert stale_a.correct_count == stale_b.correct_count == 0

        CardRepository(first).record_answer(stale_a, is_correct=True)
        CardRepository(second).record_answer(stale_b, is_correct=True)
    finally:
        first.close()
        second.close()

    db.expire_all()
    assert db.get(Card, card.id).correct_count == 2


def test_deck_listing_is_newest_first(db):
    repo = DeckRepository(db)
    older = repo.insert_deck(user_id=OWNER, name="old", description=None)
    newer = repo.insert_deck(user_id=OWNER, name="new", description=None)
    repo.insert_deck(user_id="nobody", name="other", description=None)

    listed = repo.list_decks_with_card_counts(OWNER)
    assert [(d.id, count) for d, count in listed] == [(newer.id, 0), (older.id, 0)]


def test_answer_totals_for_deck(db):
    decks, cards = DeckRepository(db), CardRepository(db)
    deck = decks.insert_deck(user_id=OWNER, name="d", description=None)
    card = cards.insert_card(deck_id=deck.id, front="f", back="b")
    cards.insert_card(deck_id=deck.id, front="g", back="c")
    cards.record_answer(card, is_correct=False)

    assert cards.answer_totals(deck.id) == (0, 1)
