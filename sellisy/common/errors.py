"""Exceptions raised by the order ledger and download delivery services."""

from datetime import datetime
from typing import Optional


class SellisyError(Exception):
    """Base exception for all sellisy errors."""

    http_status = 500


class NotFoundError(SellisyError):
    """Raised when an order or product doesn't exist."""

    http_status = 404

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class OrderNotCompletedError(SellisyError):
    """Raised when a download token is requested for an unpaid order."""

    http_status = 409

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is {status}; downloads require a COMPLETED order")


class InvalidOrderTransitionError(SellisyError):
    """Raised when a terminal order is asked to move to a different status."""

    http_status = 409

    def __init__(self, order_id: str, current: str, requested: str):
        self.order_id = order_id
        self.current = current
        self.requested = requested
        super().__init__(f"Order {order_id} is already {current}; cannot mark it {requested}")


class InvalidTokenError(SellisyError):
    """Raised when a presented download token matches no stored hash."""

    http_status = 404

    def __init__(self):
        super().__init__("This link is invalid")


class ExpiredTokenError(SellisyError):
    """Raised when a download token is found but is past its expiry."""

    http_status = 410

    def __init__(self, expires_at: Optional[datetime] = None):
        self.expires_at = expires_at
        super().__init__("This link has expired, contact support for a new one")


class StorageUnavailableError(SellisyError):
    """Raised when the object store cannot serve a request. Retryable."""

    http_status = 503

    def __init__(self, operation: str, key: Optional[str] = None, reason: Optional[str] = None):
        self.operation = operation
        self.key = key
        self.reason = reason
        msg = f"Storage unavailable during {operation}"
        if key:
            msg = f"{msg} ({key})"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class NotificationError(SellisyError):
    """Raised when the buyer notification could not be handed to the mail provider."""

    http_status = 502

    def __init__(self, channel: str, reason: Optional[str] = None):
        self.channel = channel
        self.reason = reason
        msg = f"Notification via {channel} failed"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
