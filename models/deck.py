from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from core.database import Base, utcnow


class Deck(Base):
    __tablename__ = "decks"

    id = Column(Integer, primary_key=True)
    # authenticated subject, kept opaque
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    cards = relationship(
        "Card",
        back_populates="deck",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Card.id",
    )
