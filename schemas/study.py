from datetime import datetime

from pydantic import BaseModel, StrictBool


class AnswerIn(BaseModel):
    is_correct: StrictBool


class TallyOut(BaseModel):
    correct: int
    incorrect: int


class StudyCardOut(BaseModel):
    id: int
    deck_id: int
    front: str
    back: str | None = None
    correct_count: int
    incorrect_count: int
    last_studied: datetime | None = None


class StudySessionOut(BaseModel):
    session_id: str
    deck_id: int
    total: int
    cursor: int
    revealed: bool
    submitting: bool
    advancing: bool
    answered: int
    tally: TallyOut
    progress: float
    accuracy: float
    is_complete: bool
    card: StudyCardOut
