from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from core.database import Base, utcnow


class Card(Base):
    __tablename__ = "cards"
    __table_args__ = (
        CheckConstraint("correct_count >= 0", name="ck_cards_correct_count_non_negative"),
        CheckConstraint("incorrect_count >= 0", name="ck_cards_incorrect_count_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    deck_id = Column(Integer, ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True)
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False)
    correct_count = Column(Integer, nullable=False, default=0, server_default="0")
    incorrect_count = Column(Integer, nullable=False, default=0, server_default="0")
    last_studied = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    deck = relationship("Deck", back_populates="cards")
