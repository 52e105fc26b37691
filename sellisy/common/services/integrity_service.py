from typing import Dict, List
from sqlalchemy import select
from ..db.session import get_session
from ..models.download_token import DownloadToken
from ..models.file_asset import FileAsset
from ..models.product import Product
from ..utils.clock import utcnow
from .logging import log_event


DETAIL_LIMIT = 10


class IntegrityService:
    """Cross-checks file asset rows against object storage and token housekeeping.

    Responsibilities:
    - report file assets whose storage object is missing
    - report file assets whose product row is gone
    - count active vs expired download tokens
    - repair what can be repaired without touching storage
    """

    def __init__(self, object_store, session_factory=get_session, clock=utcnow):
        self._object_store = object_store
        self._session_factory = session_factory
        self._clock = clock

    def run_health_check(self) -> Dict:
        now = self._clock()
        with self._session_factory() as session:
            assets = session.query(FileAsset).order_by(FileAsset.created_at.asc(), FileAsset.id.asc()).all()
            product_ids = {pid for (pid,) in session.query(Product.id).all()}
            expired = session.query(DownloadToken).filter(DownloadToken.expires_at < now).count()
            active = session.query(DownloadToken).filter(DownloadToken.expires_at >= now).count()
            asset_rows = [(a.id, a.product_id, a.storage_key, a.original_name) for a in assets]

        missing: List[Dict] = []
        orphaned: List[Dict] = []
        for asset_id, product_id, key, name in asset_rows:
            if product_id not in product_ids:
                orphaned.append({"id": asset_id, "product_id": product_id, "original_name": name})
                continue
            # StorageUnavailableError propagates; no partial reports
            if not self._object_store.exists(key):
                missing.append({"id": asset_id, "product_id": product_id, "storage_key": key})

        issues = []
        if missing:
            issues.append(
                {
                    "type": "missing_file_objects",
                    "severity": "error",
                    "description": "File assets whose storage object does not exist",
                    "count": len(missing),
                    "details": missing[:DETAIL_LIMIT],
                }
            )
        if orphaned:
            issues.append(
                {
                    "type": "orphaned_file_assets",
                    "severity": "warning",
                    "description": "File assets referencing a product that no longer exists",
                    "count": len(orphaned),
                    "details": orphaned[:DETAIL_LIMIT],
                }
            )
        if expired:
            issues.append(
                {
                    "type": "expired_download_tokens",
                    "severity": "warning",
                    "description": "Expired download tokens awaiting purge",
                    "count": expired,
                }
            )
        report = {
            "timestamp": now.isoformat() + "Z",
            "healthy": not issues,
            "issues": issues,
            "stats": {
                "total_file_assets": len(asset_rows),
                "missing_file_objects": len(missing),
                "orphaned_file_assets": len(orphaned),
                "active_download_tokens": active,
                "expired_download_tokens": expired,
            },
        }
        log_event("warning" if issues else "info", "integrity.checked", healthy=report["healthy"], issues=len(issues))
        return report

    def run_repair(self) -> Dict:
        now = self._clock()
        repairs = []
        with self._session_factory() as session:
            purged = (
                session.query(DownloadToken)
                .filter(DownloadToken.expires_at < now)
                .delete(synchronize_session=False)
            )
            product_ids = select(Product.id)
            orphaned = (
                session.query(FileAsset)
                .filter(FileAsset.product_id.notin_(product_ids))
                .delete(synchronize_session=False)
            )
        if purged:
            repairs.append({"type": "expired_download_tokens", "description": f"Purged {purged} expired token(s)", "count": purged})
        if orphaned:
            repairs.append({"type": "orphaned_file_assets", "description": f"Removed {orphaned} orphaned file asset row(s)", "count": orphaned})
        total = sum(r["count"] for r in repairs)
        log_event("info", "integrity.repaired", total_fixed=total)
        return {"timestamp": now.isoformat() + "Z", "repairs": repairs, "total_fixed": total}
