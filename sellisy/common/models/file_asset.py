from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from ..utils.clock import utcnow
from .base import Base


class FileAsset(Base):
    """An uploaded file owned by a product, addressed by its storage key."""

    __tablename__ = "file_asset"

    id = Column(String(64), primary_key=True)
    product_id = Column(String(64), ForeignKey("product.id"), nullable=False, index=True)
    storage_key = Column(Text, nullable=False)
    original_name = Column(String(255), nullable=False)
    size_bytes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
