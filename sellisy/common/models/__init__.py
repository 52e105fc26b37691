from .base import Base
from .download_token import DownloadToken
from .file_asset import FileAsset
from .order import ORDER_COMPLETED, ORDER_FAILED, ORDER_PENDING, PLACEHOLDER_BUYER_EMAIL, Order, OrderItem
from .product import Product

__all__ = [
    "Base",
    "DownloadToken",
    "FileAsset",
    "Order",
    "OrderItem",
    "Product",
    "ORDER_PENDING",
    "ORDER_COMPLETED",
    "ORDER_FAILED",
    "PLACEHOLDER_BUYER_EMAIL",
]
