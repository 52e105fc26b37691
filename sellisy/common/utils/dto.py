from typing import Any, Dict


def _iso(value) -> Any:
    return value.isoformat() if value is not None else None


def to_order_dto(row: Any) -> Dict:
    return {
        "id": getattr(row, "id", None),
        "store_id": getattr(row, "store_id", None),
        "buyer_email": getattr(row, "buyer_email", None),
        "total_cents": int(getattr(row, "total_cents", 0) or 0),
        "status": getattr(row, "status", None),
    }


def to_product_dto(row: Any) -> Dict:
    return {
        "id": getattr(row, "id", None),
        "owner_id": getattr(row, "owner_id", None),
        "title": getattr(row, "title", None),
        "description": getattr(row, "description", None),
        "price_cents": int(getattr(row, "price_cents", 0) or 0),
        "status": getattr(row, "status", None),
    }


def to_file_asset_dto(row: Any) -> Dict:
    return {
        "id": getattr(row, "id", None),
        "product_id": getattr(row, "product_id", None),
        "storage_key": getattr(row, "storage_key", None),
        "original_name": getattr(row, "original_name", None),
        "size_bytes": int(getattr(row, "size_bytes", 0) or 0),
        "created_at": _iso(getattr(row, "created_at", None)),
    }
