import asyncio
import random
from types import SimpleNamespace

import pytest

from core.results import ActionResult
from services.study_session import (
    AnswerNotAllowedError,
    EmptyDeckError,
    SessionBusyError,
    StudySession,
    StudySessionRegistry,
)


def make_cards(n, deck_id=7):
    return [
        SimpleNamespace(
            id=i + 1,
            deck_id=deck_id,
            front=f"front {i + 1}",
            back=f"back {i + 1}",
            correct_count=0,
            incorrect_count=0,
            last_studied=None,
        )
        for i in range(n)
    ]


def make_session(n, **kwargs):
    return StudySession.from_cards("owner", 7, make_cards(n), **kwargs)


class FakeStore:
    """Stands in for the answer-recording mutation."""

    def __init__(self, cards, fail=False):
        self.cards = {card.id: card for card in cards}
        self.fail = fail
        self.calls = []

    async def record(self, card_id, deck_id, is_correct):
        self.calls.append((card_id, deck_id, is_correct))
        if self.fail:
            return ActionResult.internal("Failed to record answer")
        card = self.cards[card_id]
        if is_correct:
            card.correct_count += 1
        else:
            card.incorrect_count += 1
        card.last_studied = "now"
        return ActionResult.ok(card)


def test_empty_deck_cannot_open_a_session():
    with pytest.raises(EmptyDeckError):
        make_session(0)


def test_navigation_sequence():
    session = make_session(5)

    session.advance()
    session.advance()
    session.retreat()

    assert session.cursor == 1


def test_navigation_is_clamped_at_both_ends():
    session = make_session(5)

    session.retreat()
    assert session.cursor == 0

    for _ in range(10):
        session.advance()
    assert session.cursor == 4


def test_moving_hides_the_back():
    session = make_session(3)
    session.reveal()
    assert session.revealed

    session.advance()
    assert not session.revealed

    session.reveal()
    session.reveal()
    assert not session.revealed


def test_shuffle_keeps_cards_and_tally():
    session = make_session(5, rng=random.Random(3))
    session.tally.correct = 2
    session.advance()
    session.reveal()
    ids = sorted(card.id for card in session.order)

    session.shuffle()

    assert sorted(card.id for card in session.order) == ids
    assert session.cursor == 0
    assert not session.revealed
    assert session.tally.correct == 2


def test_restart_keeps_order_and_clears_tally():
    session = make_session(5, rng=random.Random(1))
    session.shuffle()
    order = [card.id for card in session.order]
    session.tally.incorrect = 3
    session.answered = 3
    session.advance()

    session.restart()

    assert [card.id for card in session.order] == order
    assert session.cursor == 0
    assert (session.tally.correct, session.tally.incorrect) == (0, 0)
    assert session.answered == 0


def test_answer_needs_a_revealed_card():
    session = make_session(2)
    store = FakeStore(make_cards(2))

    with pytest.raises(AnswerNotAllowedError):
        asyncio.run(session.submit_answer(True, store.record))
    assert store.calls == []


def test_two_card_walkthrough():
    cards = make_cards(2)
    store = FakeStore(cards)
    session = StudySession.from_cards("owner", 7, cards)

    session.reveal()
    asyncio.run(session.submit_answer(True, store.record))

    assert (session.tally.correct, session.tally.incorrect) == (1, 0)
    assert session.cursor == 1
    assert session.order[0].correct_count == 1
    assert not session.is_complete

    session.reveal()
    asyncio.run(session.submit_answer(False, store.record))

    assert (session.tally.correct, session.tally.incorrect) == (1, 1)
    assert session.cursor == 1
    assert session.is_complete
    assert session.accuracy == 50.0
    assert store.calls == [(1, 7, True), (2, 7, False)]


def test_failed_answer_keeps_position_and_tally():
    session = make_session(3)
    session.reveal()

    result = asyncio.run(session.submit_answer(True, FakeStore(make_cards(3), fail=True).record))

    assert not result.success
    assert session.cursor == 0
    assert session.tally.total == 0
    assert session.revealed
    assert not session.submitting


def test_transitions_are_blocked_while_answer_is_pending():
    async def scenario():
        session = make_session(3)
        session.reveal()
        release = asyncio.Event()

        async def slow_record(card_id, deck_id, is_correct):
            await release.wait()
            return ActionResult.ok(SimpleNamespace(correct_count=1, incorrect_count=0, last_studied=None))

        pending = asyncio.create_task(session.submit_answer(True, slow_record))
        await asyncio.sleep(0)

        assert session.submitting
        for transition in (session.advance, session.retreat, session.reveal):
            with pytest.raises(SessionBusyError):
                transition()
        with pytest.raises(SessionBusyError):
            await session.submit_answer(True, slow_record)

        release.set()
        await pending
        return session

    session = asyncio.run(scenario())
    assert session.cursor == 1
    assert session.tally.correct == 1


def test_late_answer_after_restart_is_discarded():
    async def scenario():
        session = make_session(3)
        session.reveal()
        release = asyncio.Event()

        async def slow_record(card_id, deck_id, is_correct):
            await release.wait()
            return ActionResult.ok(SimpleNamespace(correct_count=1, incorrect_count=0, last_studied=None))

        pending = asyncio.create_task(session.submit_answer(True, slow_record))
        await asyncio.sleep(0)
        session.restart()
        release.set()
        result = await pending
        return session, result

    session, result = asyncio.run(scenario())
    assert result.success
    assert session.tally.total == 0
    assert session.cursor == 0
    assert session.order[0].correct_count == 0


def test_state_hides_back_until_revealed():
    session = make_session(2)

    assert session.to_dict()["card"]["back"] is None
    session.reveal()
    state = session.to_dict()
    assert state["card"]["back"] == "back 1"
    assert state["progress"] == 50.0
    assert state["is_complete"] is False


def test_registry_scopes_sessions_to_owner():
    registry = StudySessionRegistry(ttl_seconds=60)
    session = registry.open("owner", 7, make_cards(2))

    assert registry.get("owner", session.session_id) is session
    assert registry.get("someone-else", session.session_id) is None
    assert not registry.close("someone-else", session.session_id)
    assert registry.close("owner", session.session_id)
    assert len(registry) == 0


def test_registry_prunes_idle_sessions_and_closes_by_deck():
    registry = StudySessionRegistry(ttl_seconds=60)
    idle = registry.open("owner", 7, make_cards(1))
    fresh = registry.open("owner", 8, make_cards(1, deck_id=8))
    idle.last_activity -= 120

    assert registry.prune_idle() == 1
    assert registry.get("owner", idle.session_id) is None

    assert registry.close_deck(8) == 1
    assert registry.get("owner", fresh.session_id) is None


def test_late_answer_after_shuffle_is_discarded():
    async def scenario():
        session = make_session(4, rng=random.Random(5))
        session.advance()
        session.reveal()
        release = asyncio.Event()

        async def slow_record(card_id, deck_id, is_correct):
            await release.wait()
            return ActionResult.ok(SimpleNamespace(correct_count=9, incorrect_count=0, last_studied=None))

        pending = asyncio.create_task(session.submit_answer(True, slow_record))
        await asyncio.sleep(0)
        session.shuffle()
        release.set()
        await pending
        return session

    session = asyncio.run(scenario())
    assert session.cursor == 0
    assert session.tally.total == 0
    assert session.answered == 0
    assert all(card.correct_count == 0 for card in session.order)
    assert not session.submitting


def test_answered_card_stays_current_during_advance_delay():
    async def scenario():
        cards = make_cards(3)
        store = FakeStore(cards)
        session = StudySession.from_cards("owner", 7, cards, advance_delay=0.05)
        session.reveal()

        await session.submit_answer(True, store.record)
        during = session.to_dict()

        for transition in (session.advance, session.retreat, session.reveal):
            with pytest.raises(SessionBusyError):
                transition()
        with pytest.raises(SessionBusyError):
            await session.submit_answer(True, store.record)

        await session.settle()
        return session, during

    session, during = asyncio.run(scenario())
    assert during["cursor"] == 0
    assert during["advancing"] is True
    assert during["tally"] == {"correct": 1, "incorrect": 0}
    assert during["card"]["correct_count"] == 1
    assert session.cursor == 1
    assert not session.advancing
    assert not session.revealed


def test_shuffle_during_advance_delay_cancels_the_advance():
    async def scenario():
        cards = make_cards(3)
        session = StudySession.from_cards("owner", 7, cards, advance_delay=0.05, rng=random.Random(2))
        session.reveal()
        await session.submit_answer(False, FakeStore(cards).record)
        assert session.advancing

        session.shuffle()
        await asyncio.sleep(0.1)
        return session

    session = asyncio.run(scenario())
    assert session.cursor == 0
    assert not session.advancing
    assert session.tally.incorrect == 1


def test_completion_needs_an_answer_on_the_last_card():
    cards = make_cards(2)
    store = FakeStore(cards)
    session = StudySession.from_cards("owner", 7, cards)

    session.advance()
    assert not session.is_complete

    session.reveal()
    asyncio.run(session.submit_answer(True, store.record))
    assert session.is_complete

    session.retreat()
    assert not session.is_complete
    session.advance()
    assert not session.is_complete

    session.reveal()
    asyncio.run(session.submit_answer(True, store.record))
    assert session.is_complete
    session.restart()
    assert not session.is_complete


def test_registry_keeps_one_session_per_owner_and_deck():
    registry = StudySessionRegistry(ttl_seconds=60)
    first = registry.open("owner", 7, make_cards(2))
    other_deck = registry.open("owner", 8, make_cards(2, deck_id=8))
    other_owner = registry.open("someone-else", 7, make_cards(2))

    second = registry.open("owner", 7, make_cards(2))

    assert len(registry) == 3
    assert registry.get("owner", first.session_id) is None
    assert registry.get("owner", second.session_id) is second
    assert registry.get("owner", other_deck.session_id) is other_deck
    assert registry.get("someone-else", other_owner.session_id) is other_owner
