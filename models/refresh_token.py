from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from core.database import Base, utcnow


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    jti = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", backref="refresh_tokens")

    def mark_revoked(self) -> None:
        self.revoked = True
        self.revoked_at = utcnow()

    def is_expired(self, now=None) -> bool:
        return self.expires_at <= (now or utcnow())
