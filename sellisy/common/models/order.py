from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from ..utils.clock import utcnow
from .base import Base


ORDER_PENDING = "PENDING"
ORDER_COMPLETED = "COMPLETED"
ORDER_FAILED = "FAILED"

# buyer address recorded before checkout collects the real one
PLACEHOLDER_BUYER_EMAIL = "pending@checkout.com"


class Order(Base):
    __tablename__ = "order"

    id = Column(String(64), primary_key=True)
    store_id = Column(String(64), nullable=False, index=True)
    buyer_email = Column(String(320), nullable=False)
    total_cents = Column(Integer, nullable=False, default=0)
    payment_session_id = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=ORDER_PENDING)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    email_sent = Column(Boolean, nullable=False, default=False)


class OrderItem(Base):
    __tablename__ = "order_item"

    id = Column(String(64), primary_key=True)
    order_id = Column(String(64), ForeignKey("order.id"), nullable=False, index=True)
    product_id = Column(String(64), ForeignKey("product.id"), nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)
