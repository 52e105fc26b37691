"""Download tokens: mint for a completed order, resolve into presigned file URLs.

Only the SHA-256 of a raw token is persisted. A token stays valid while
``now <= expires_at`` and can be resolved any number of times within that
window; revoking deletes its row.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from ..config import DeliveryConfig
from ..db.session import get_session
from ..errors import (
    ExpiredTokenError,
    InvalidTokenError,
    NotFoundError,
    OrderNotCompletedError,
    StorageUnavailableError,
)
from ..models.download_token import DownloadToken
from ..models.file_asset import FileAsset
from ..models.order import ORDER_COMPLETED, Order, OrderItem
from ..utils.clock import utcnow
from ..utils.dto import to_order_dto
from ..utils.tokens import generate_raw_token, hash_token
from .logging import log_event


@dataclass
class IssuedToken:
    token_id: str
    order_id: str
    raw_token: str
    expires_at: datetime

    def to_dict(self) -> Dict:
        return {
            "download_token": self.raw_token,
            "expires_at": self.expires_at.isoformat() + "Z",
        }


@dataclass
class ResolvedDownload:
    order: Dict
    files: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {"order": self.order, "files": self.files}


class DownloadTokenService:
    """Issues and resolves download tokens scoped to one order's purchases."""

    def __init__(self, object_store, config: Optional[DeliveryConfig] = None, session_factory=get_session, clock=utcnow):
        self._object_store = object_store
        self._config = config or DeliveryConfig()
        self._session_factory = session_factory
        self._clock = clock

    def issue_token(self, order_id: str) -> IssuedToken:
        """Mint a token for a COMPLETED order. The raw value is returned only here."""
        with self._session_factory() as session:
            order = session.get(Order, order_id) if order_id else None
            if not order:
                raise NotFoundError("Order", order_id)
            if order.status != ORDER_COMPLETED:
                raise OrderNotCompletedError(order_id, order.status)
            raw = generate_raw_token()
            now = self._clock()
            row = DownloadToken(
                id=str(uuid4()),
                order_id=order_id,
                token_hash=hash_token(raw),
                expires_at=now + timedelta(seconds=self._config.token_ttl_seconds),
                created_at=now,
            )
            session.add(row)
            session.flush()
            log_event("info", "download_token.issued", token_id=row.id, order_id=order_id, expires_at=row.expires_at)
            return IssuedToken(token_id=row.id, order_id=order_id, raw_token=raw, expires_at=row.expires_at)

    def resolve_token(self, raw_token: Optional[str]) -> ResolvedDownload:
        order, assets = self._load_deliverables(raw_token)
        files = self._presign_all(assets)
        log_event("info", "download_token.resolved", order_id=order["id"], files=len(files))
        return ResolvedDownload(order=order, files=files)

    def is_active(self, raw_token: Optional[str]) -> bool:
        """True while the token exists and has not expired."""
        if not raw_token or not raw_token.strip():
            return False
        with self._session_factory() as session:
            token = (
                session.query(DownloadToken)
                .filter(DownloadToken.token_hash == hash_token(raw_token.strip()))
                .first()
            )
            return token is not None and not token.is_expired(self._clock())

    def revoke_token(self, raw_token: Optional[str]) -> bool:
        if not raw_token or not raw_token.strip():
            return False
        with self._session_factory() as session:
            removed = (
                session.query(DownloadToken)
                .filter(DownloadToken.token_hash == hash_token(raw_token.strip()))
                .delete(synchronize_session=False)
            )
        if removed:
            log_event("info", "download_token.revoked")
        return bool(removed)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._session_factory() as session:
            removed = (
                session.query(DownloadToken)
                .filter(DownloadToken.expires_at < now)
                .delete(synchronize_session=False)
            )
        log_event("info", "download_token.purged", count=removed)
        return int(removed or 0)

    def _load_deliverables(self, raw_token: Optional[str]) -> Tuple[Dict, List[Tuple[str, str]]]:
        if not raw_token or not raw_token.strip():
            raise InvalidTokenError()
        with self._session_factory() as session:
            token = (
                session.query(DownloadToken)
                .filter(DownloadToken.token_hash == hash_token(raw_token.strip()))
                .first()
            )
            if token is None:
                log_event("info", "download_token.invalid")
                raise InvalidTokenError()
            if token.is_expired(self._clock()):
                log_event("info", "download_token.expired", token_id=token.id, order_id=token.order_id)
                raise ExpiredTokenError(token.expires_at)
            order = session.get(Order, token.order_id)
            if order is None:
                log_event("warning", "download_token.orphaned", token_id=token.id, order_id=token.order_id)
                raise InvalidTokenError()
            rows = (
                session.query(FileAsset.id, FileAsset.storage_key, FileAsset.original_name)
                .join(OrderItem, OrderItem.product_id == FileAsset.product_id)
                .filter(OrderItem.order_id == order.id)
                .order_by(
                    OrderItem.position.asc(),
                    OrderItem.id.asc(),
                    FileAsset.created_at.asc(),
                    FileAsset.id.asc(),
                )
                .all()
            )
            seen = set()
            assets = []
            # the same product bought twice yields its files once
            for asset_id, storage_key, original_name in rows:
                if asset_id in seen:
                    continue
                seen.add(asset_id)
                assets.append((storage_key, original_name))
            return to_order_dto(order), assets

    def _presign_all(self, assets: List[Tuple[str, str]]) -> List[Dict]:
        if not assets:
            return []
        workers = min(self._config.max_presign_workers, len(assets))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order regardless of completion order
            urls = list(pool.map(lambda a: self._presign(*a), assets))
        return [{"name": name, "url": url} for (_, name), url in zip(assets, urls)]

    def _presign(self, storage_key: str, filename: str) -> str:
        ttl = self._config.presigned_url_ttl_seconds
        try:
            return self._object_store.get_download_url(storage_key, filename, expires_in=ttl)
        except StorageUnavailableError as exc:
            log_event("warning", "storage.presign_retry", operation=exc.operation, reason=exc.reason)
            time.sleep(self._config.presign_retry_backoff_seconds)
        try:
            return self._object_store.get_download_url(storage_key, filename, expires_in=ttl)
        except StorageUnavailableError as exc:
            log_event("error", "storage.presign_failed", operation=exc.operation, reason=exc.reason)
            raise
