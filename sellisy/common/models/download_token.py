"""Download token rows. Only the SHA-256 of the raw token is stored."""
from sqlalchemy import Column, DateTime, ForeignKey, String
from ..utils.clock import utcnow
from .base import Base


class DownloadToken(Base):
    __tablename__ = "download_token"

    id = Column(String(64), primary_key=True)
    order_id = Column(String(64), ForeignKey("order.id"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def is_expired(self, now) -> bool:
        return now > self.expires_at
