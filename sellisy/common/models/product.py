from sqlalchemy import Column, DateTime, Integer, String, Text
from ..utils.clock import utcnow
from .base import Base


class Product(Base):
    __tablename__ = "product"

    id = Column(String(64), primary_key=True)
    owner_id = Column(String(64), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="DRAFT")
    created_at = Column(DateTime, nullable=False, default=utcnow)
