"""
Study session state machine.

A session walks through a working copy of a deck's cards. It is held in
memory by whoever hosts the study view and never persisted; only the per-card
answer counters reach the database, one card at a time, through the
answer-recording mutation.
"""
import asyncio
import logging
import random
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable

from core.results import ActionResult

logger = logging.getLogger(__name__)

AnswerRecorder = Callable[[int, int, bool], Awaitable[ActionResult]]


class StudySessionError(Exception):
    """Raised when a transition is not allowed in the current state."""


class SessionBusyError(StudySessionError):
    pass


class AnswerNotAllowedError(StudySessionError):
    pass


class EmptyDeckError(StudySessionError):
    pass


@dataclass
class CardSnapshot:
    id: int
    deck_id: int
    front: str
    back: str
    correct_count: int = 0
    incorrect_count: int = 0
    last_studied: datetime | None = None

    @classmethod
    def from_card(cls, card: Any) -> "CardSnapshot":
        return cls(
            id=card.id,
            deck_id=card.deck_id,
            front=card.front,
            back=card.back,
            correct_count=card.correct_count or 0,
            incorrect_count=card.incorrect_count or 0,
            last_studied=card.last_studied,
        )

    def patch(self, card: Any) -> None:
        self.correct_count = card.correct_count
        self.incorrect_count = card.incorrect_count
        self.last_studied = card.last_studied


@dataclass
class Tally:
    correct: int = 0
    incorrect: int = 0

    @property
    def total(self) -> int:
        return self.correct + self.incorrect


@dataclass
class StudySession:
    owner_id: str
    deck_id: int
    order: list[CardSnapshot]
    session_id: str = field(default_factory=lambda: secrets.token_urlsafe(16))
    advance_delay: float = 0.0
    cursor: int = 0
    revealed: bool = False
    tally: Tally = field(default_factory=Tally)
    answered: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False)
    last_activity: float = field(default_factory=time.monotonic)
    _submitting: bool = field(default=False, init=False, repr=False)
    _completed: bool = field(default=False, init=False, repr=False)
    _epoch: int = field(default=0, init=False, repr=False)
    _advance_task: asyncio.Task | None = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if not self.order:
            raise EmptyDeckError("This deck doesn't have any cards yet")

    @classmethod
    def from_cards(cls, owner_id: str, deck_id: int, cards: Iterable[Any], **kwargs) -> "StudySession":
        return cls(owner_id=owner_id, deck_id=deck_id, order=[CardSnapshot.from_card(c) for c in cards], **kwargs)

    # ------------------------------------------------------------------
    # derived state

    @property
    def total(self) -> int:
        return len(self.order)

    @property
    def current_card(self) -> CardSnapshot:
        return self.order[self.cursor]

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def advancing(self) -> bool:
        return self._advance_task is not None and not self._advance_task.done()

    @property
    def is_last(self) -> bool:
        return self.cursor == self.total - 1

    @property
    def is_complete(self) -> bool:
        # set only by an answer accepted on the last card
        return self._completed

    @property
    def progress(self) -> float:
        return round((self.cursor + 1) / self.total * 100, 1)

    @property
    def accuracy(self) -> float:
        if not self.tally.total:
            return 0.0
        return round(self.tally.correct / self.tally.total * 100, 1)

    # ------------------------------------------------------------------
    # transitions

    def advance(self) -> None:
        self._ensure_idle()
        self._step(1)

    def retreat(self) -> None:
        self._ensure_idle()
        self._step(-1)

    def reveal(self) -> None:
        self._ensure_idle()
        self.revealed = not self.revealed
        self.touch()

    def shuffle(self) -> None:
        self._cancel_advance()
        shuffled = list(self.order)
        self.rng.shuffle(shuffled)
        self.order = shuffled
        self.cursor = 0
        self.revealed = False
        self._completed = False
        self._epoch += 1
        self.touch()

    def restart(self) -> None:
        self._cancel_advance()
        self.cursor = 0
        self.revealed = False
        self.tally = Tally()
        self.answered = 0
        self._completed = False
        self._epoch += 1
        self.touch()

    async def submit_answer(self, is_correct: bool, record: AnswerRecorder) -> ActionResult:
        """Record an answer for the current card.

        Rejected unless the card is revealed and no other answer is pending.
        The recorder's returned card is the source of truth for the local
        counters. On success the answered card stays current for
        ``advance_delay`` seconds before the session moves on, so callers see
        the updated tally first. A response that arrives after the session was
        shuffled or restarted is dropped.
        """
        if self._submitting or self.advancing:
            raise SessionBusyError("An answer is already being recorded")
        if not self.revealed:
            raise AnswerNotAllowedError("Reveal the card before answering")

        self._submitting = True
        position, epoch = self.cursor, self._epoch
        card = self.current_card
        try:
            result = await record(card.id, card.deck_id, is_correct)

            if self.cursor != position or self._epoch != epoch:
                logger.warning(
                    "Discarding late answer for card %s in session %s", card.id, self.session_id
                )
                return result
            if not result.success:
                return result

            if is_correct:
                self.tally.correct += 1
            else:
                self.tally.incorrect += 1
            self.answered += 1
            card.patch(result.data)

            if self.is_last:
                self._completed = True
            else:
                self._schedule_advance(epoch)
            return result
        finally:
            self._submitting = False
            self.touch()

    async def settle(self) -> None:
        """Wait for a scheduled auto-advance, if any, to run or be cancelled."""
        task = self._advance_task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def close(self) -> None:
        self._cancel_advance()

    # ------------------------------------------------------------------

    def _schedule_advance(self, epoch: int) -> None:
        if self.advance_delay <= 0:
            self._step(1)
            return
        self._advance_task = asyncio.get_running_loop().create_task(self._advance_later(epoch))

    async def _advance_later(self, epoch: int) -> None:
        await asyncio.sleep(self.advance_delay)
        if self._epoch == epoch:
            self._advance_task = None
            self._step(1)

    def _cancel_advance(self) -> None:
        if self._advance_task is not None:
            self._advance_task.cancel()
            self._advance_task = None

    def _ensure_idle(self) -> None:
        if self._submitting or self.advancing:
            raise SessionBusyError("Wait for the current answer to be recorded")

    def _step(self, delta: int) -> None:
        target = self.cursor + delta
        if 0 <= target < self.total and target != self.cursor:
            self.cursor = target
            self._completed = False
        self.revealed = False
        self.touch()

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def to_dict(self) -> dict[str, Any]:
        card = self.current_card
        return {
            "session_id": self.session_id,
            "deck_id": self.deck_id,
            "total": self.total,
            "cursor": self.cursor,
            "revealed": self.revealed,
            "submitting": self._submitting,
            "advancing": self.advancing,
            "answered": self.answered,
            "tally": {"correct": self.tally.correct, "incorrect": self.tally.incorrect},
            "progress": self.progress,
            "accuracy": self.accuracy,
            "is_complete": self.is_complete,
            "card": {
                "id": card.id,
                "deck_id": card.deck_id,
                "front": card.front,
                "back": card.back if self.revealed else None,
                "correct_count": card.correct_count,
                "incorrect_count": card.incorrect_count,
                "last_studied": card.last_studied,
            },
        }


class StudySessionRegistry:
    """In-process home for open study sessions, scoped by owner.

    An owner has at most one session per deck; opening another replaces it.
    """

    def __init__(self, *, ttl_seconds: float, advance_delay: float = 0.0):
        self.ttl_seconds = ttl_seconds
        self.advance_delay = advance_delay
        self._sessions: dict[str, StudySession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self, owner_id: str, deck_id: int, cards: Iterable[Any]) -> StudySession:
        session = StudySession.from_cards(owner_id, deck_id, cards, advance_delay=self.advance_delay)
        replaced = [
            sid
            for sid, other in self._sessions.items()
            if other.owner_id == owner_id and other.deck_id == deck_id
        ]
        self._drop(replaced)
        self._sessions[session.session_id] = session
        logger.info("Opened study session %s for deck %s", session.session_id, deck_id)
        return session

    def get(self, owner_id: str, session_id: str) -> StudySession | None:
        session = self._sessions.get(session_id)
        if session is None or session.owner_id != owner_id:
            return None
        return session

    def close(self, owner_id: str, session_id: str) -> bool:
        if self.get(owner_id, session_id) is None:
            return False
        self._drop([session_id])
        return True

    def close_deck(self, deck_id: int) -> int:
        stale = [sid for sid, session in self._sessions.items() if session.deck_id == deck_id]
        self._drop(stale)
        return len(stale)

    def prune_idle(self, now: float | None = None) -> int:
        now = time.monotonic() if now is None else now
        idle = [
            sid
            for sid, session in self._sessions.items()
            if not (session.submitting or session.advancing)
            and now - session.last_activity > self.ttl_seconds
        ]
        self._drop(idle)
        if idle:
            logger.info("Pruned %d idle study sessions", len(idle))
        return len(idle)

    def _drop(self, session_ids: list[str]) -> None:
        for sid in session_ids:
            self._sessions.pop(sid).close()
