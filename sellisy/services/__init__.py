"""Sellisy 物件儲存閘道模組入口。"""

from .object_store import (
    ObjectStoreGateway,
    R2ObjectStore,
    ReplitObjectStore,
    UnavailableObjectStore,
    UploadTarget,
    select_object_store,
)

__all__ = [
    "ObjectStoreGateway",
    "R2ObjectStore",
    "ReplitObjectStore",
    "UnavailableObjectStore",
    "UploadTarget",
    "select_object_store",
]
