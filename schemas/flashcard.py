from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool, constr, field_validator

DeckName = constr(strip_whitespace=True, min_length=1, max_length=255)
DeckDescription = constr(strip_whitespace=True, max_length=1000)
CardText = constr(strip_whitespace=True, min_length=1, max_length=5000)


def _blank_to_none(value):
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return value


class DeckCreateIn(BaseModel):
    name: DeckName = Field(..., title="Deck name")
    description: DeckDescription | None = Field(None, title="Description")

    @field_validator("description", mode="before")
    @classmethod
    def _empty_description_to_none(cls, value):
        return _blank_to_none(value)


class DeckUpdateIn(BaseModel):
    deck_id: int = Field(..., gt=0, title="Deck id")
    name: DeckName | None = Field(None, title="Deck name")
    description: DeckDescription | None = Field(None, title="Description")

    @field_validator("description", mode="before")
    @classmethod
    def _empty_description_to_none(cls, value):
        return _blank_to_none(value)

    @field_validator("name")
    @classmethod
    def _name_not_null(cls, value):
        # may be omitted, but an explicit null would blank a required column
        if value is None:
            raise ValueError("Deck name is required")
        return value


class DeckDeleteIn(BaseModel):
    deck_id: int = Field(..., gt=0, title="Deck id")


class CardContentIn(BaseModel):
    front: CardText = Field(..., title="Card front")
    back: CardText = Field(..., title="Card back")


class CardCreateIn(CardContentIn):
    deck_id: int = Field(..., gt=0, title="Deck id")


class CardUpdateIn(BaseModel):
    card_id: int = Field(..., gt=0, title="Card id")
    deck_id: int = Field(..., gt=0, title="Deck id")
    front: CardText | None = Field(None, title="Card front")
    back: CardText | None = Field(None, title="Card back")

    @field_validator("front", "back")
    @classmethod
    def _text_not_null(cls, value, info):
        if value is None:
            label = "Card front" if info.field_name == "front" else "Card back"
            raise ValueError(f"{label} is required")
        return value


class CardDeleteIn(BaseModel):
    card_id: int = Field(..., gt=0, title="Card id")
    deck_id: int = Field(..., gt=0, title="Deck id")


class RecordAnswerIn(BaseModel):
    card_id: int = Field(..., gt=0, title="Card id")
    deck_id: int = Field(..., gt=0, title="Deck id")
    is_correct: StrictBool = Field(..., title="Answer")


class DeckImportIn(DeckCreateIn):
    pass


class DeckOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime


class DeckWithCountOut(DeckOut):
    card_count: int = 0


class CardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    deck_id: int
    front: str
    back: str
    correct_count: int
    incorrect_count: int
    last_studied: datetime | None = None
    created_at: datetime
    updated_at: datetime


class DashboardStatsOut(BaseModel):
    total_decks: int
    total_cards: int
    average_cards_per_deck: int


class DeckStatsOut(BaseModel):
    total_cards: int
    correct_answers: int
    incorrect_answers: int
    accuracy: float
    created_at: datetime
    updated_at: datetime
