from typing import Dict, List, Optional
from uuid import uuid4
from ..db.session import get_session
from ..errors import NotFoundError
from ..models.file_asset import FileAsset
from ..models.product import Product
from ..utils.clock import utcnow
from ..utils.dto import to_file_asset_dto, to_product_dto
from ..utils.validators import ensure_non_negative_int, require_text
from .logging import log_event


class CatalogService:
    """Products and the file assets attached to them."""

    def __init__(self, session_factory=get_session, clock=utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def create_product(
        self,
        *,
        title: str,
        price_cents: int,
        owner_id: Optional[str] = None,
        description: Optional[str] = None,
        status: str = "ACTIVE",
    ) -> Dict:
        title = require_text(title, "title")
        price = ensure_non_negative_int(price_cents, "price_cents")
        if status not in ("DRAFT", "ACTIVE"):
            raise ValueError("status must be DRAFT or ACTIVE")
        with self._session_factory() as session:
            product = Product(
                id=str(uuid4()),
                owner_id=owner_id,
                title=title,
                description=description,
                price_cents=price,
                status=status,
                created_at=self._clock(),
            )
            session.add(product)
            session.flush()
            log_event("info", "product.created", product_id=product.id, price_cents=price)
            return to_product_dto(product)

    def get_product(self, product_id: str) -> Dict:
        with self._session_factory() as session:
            product = session.get(Product, product_id) if product_id else None
            if not product:
                raise NotFoundError("Product", product_id)
            return to_product_dto(product)

    def attach_file(self, *, product_id: str, storage_key: str, original_name: str, size_bytes: int = 0) -> Dict:
        """Register an uploaded object as a deliverable file of ``product_id``."""
        key = require_text(storage_key, "storage_key")
        name = require_text(original_name, "original_name")
        size = ensure_non_negative_int(size_bytes or 0, "size_bytes")
        with self._session_factory() as session:
            if not session.get(Product, product_id):
                raise NotFoundError("Product", product_id)
            asset = FileAsset(
                id=str(uuid4()),
                product_id=product_id,
                storage_key=key,
                original_name=name,
                size_bytes=size,
                created_at=self._clock(),
            )
            session.add(asset)
            session.flush()
            log_event("info", "file_asset.attached", product_id=product_id, file_asset_id=asset.id)
            return to_file_asset_dto(asset)

    def list_files(self, product_id: str) -> List[Dict]:
        with self._session_factory() as session:
            rows = (
                session.query(FileAsset)
                .filter(FileAsset.product_id == product_id)
                .order_by(FileAsset.created_at.asc(), FileAsset.id.asc())
                .all()
            )
            return [to_file_asset_dto(r) for r in rows]
