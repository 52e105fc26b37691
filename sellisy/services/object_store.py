"""S3 相容物件儲存閘道：R2、Replit sidecar，以及無可用後端時的替代實作。

後端在啟動時透過 ``select_object_store`` 探測一次並注入，請求期間不再重新探測。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import quote
from uuid import uuid4

import boto3
import requests
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..common.errors import StorageUnavailableError
from ..common.services.logging import log_event


logger = logging.getLogger(__name__)

UPLOAD_URL_TTL_SECONDS = 900
DEFAULT_DOWNLOAD_URL_TTL_SECONDS = 3600


@dataclass
class UploadTarget:
    upload_url: str
    storage_key: str
    public_url: str

    def to_dict(self) -> dict:
        return {
            "upload_url": self.upload_url,
            "storage_key": self.storage_key,
            "public_url": self.public_url,
        }


def content_disposition(filename: Optional[str]) -> Optional[str]:
    """Attachment header forcing the browser to save under the original name."""
    if not filename:
        return None
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "")
    ascii_name = ascii_name.strip() or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


class ObjectStoreGateway:
    """物件儲存介面；所有失敗一律轉為 StorageUnavailableError。"""

    name = "base"

    def get_upload_url(self, prefix: str = "uploads") -> UploadTarget:
        raise NotImplementedError

    def get_download_url(
        self,
        storage_key: str,
        filename: Optional[str] = None,
        expires_in: int = DEFAULT_DOWNLOAD_URL_TTL_SECONDS,
    ) -> str:
        raise NotImplementedError

    def exists(self, storage_key: str) -> bool:
        raise NotImplementedError

    def delete(self, storage_key: str) -> None:
        raise NotImplementedError


class R2ObjectStore(ObjectStoreGateway):
    """Cloudflare R2 (S3 API) 閘道，使用 boto3 產生 presigned URL。"""

    name = "r2"
    _MISSING_CODES = {"404", "NoSuchKey", "NotFound"}

    def __init__(
        self,
        *,
        bucket: str,
        public_url: str,
        account_id: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 10.0,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.public_base = public_url.rstrip("/")
        if client is None:
            if not (account_id and access_key_id and secret_access_key):
                raise ValueError(
                    "R2 credentials not configured (R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY, R2_ACCOUNT_ID)"
                )
            client = boto3.client(
                "s3",
                region_name="auto",
                endpoint_url=f"https://{account_id}.r2.cloudflarestorage.com",
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=connect_timeout,
                    read_timeout=read_timeout,
                    retries={"max_attempts": 2, "mode": "standard"},
                ),
            )
        self.client = client

    def get_upload_url(self, prefix: str = "uploads") -> UploadTarget:
        key = f"{prefix.strip('/') or 'uploads'}/{uuid4()}"
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=UPLOAD_URL_TTL_SECONDS,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError("upload_url", key, str(exc)) from exc
        return UploadTarget(upload_url=url, storage_key=key, public_url=self.public_url(key))

    def get_download_url(
        self,
        storage_key: str,
        filename: Optional[str] = None,
        expires_in: int = DEFAULT_DOWNLOAD_URL_TTL_SECONDS,
    ) -> str:
        params = {"Bucket": self.bucket, "Key": storage_key}
        disposition = content_disposition(filename)
        if disposition:
            params["ResponseContentDisposition"] = disposition
        try:
            return self.client.generate_presigned_url("get_object", Params=params, ExpiresIn=int(expires_in))
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError("download_url", storage_key, str(exc)) from exc

    def exists(self, storage_key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=storage_key)
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in self._MISSING_CODES:
                return False
            raise StorageUnavailableError("exists", storage_key, code or str(exc)) from exc
        except BotoCoreError as exc:
            raise StorageUnavailableError("exists", storage_key, str(exc)) from exc

    def delete(self, storage_key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=storage_key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError("delete", storage_key, str(exc)) from exc

    def public_url(self, storage_key: str) -> str:
        return f"{self.public_base}/{storage_key}"

    def extract_key_from_url(self, url: str) -> Optional[str]:
        if url.startswith(self.public_base + "/"):
            return url[len(self.public_base) + 1:]
        if url.startswith("https://pub-") and ".r2.dev/" in url:
            return url[url.index(".r2.dev/") + len(".r2.dev/"):]
        return None


class ReplitObjectStore(ObjectStoreGateway):
    """Replit Object Storage 閘道，透過本機 sidecar 簽發 URL。"""

    name = "replit"
    SIGN_PATH = "/object-storage/signed-object-url"

    def __init__(
        self,
        *,
        private_object_dir: str,
        sidecar_endpoint: str = "http://127.0.0.1:1106",
        timeout: Tuple[float, float] = (5.0, 10.0),
    ) -> None:
        if not private_object_dir or not private_object_dir.strip("/"):
            raise ValueError("PRIVATE_OBJECT_DIR not set")
        self.private_object_dir = "/" + private_object_dir.strip("/")
        self.sidecar_endpoint = sidecar_endpoint.rstrip("/")
        self.timeout = timeout

    @classmethod
    def probe(cls, sidecar_endpoint: str, timeout: Tuple[float, float] = (2.0, 2.0)) -> bool:
        """sidecar 可回應簽章請求（200 或 404）即視為可用。"""
        payload = {
            "bucket_name": "test",
            "object_name": "test",
            "method": "HEAD",
            "expires_at": _iso_in(60),
        }
        try:
            resp = requests.post(sidecar_endpoint.rstrip("/") + cls.SIGN_PATH, json=payload, timeout=timeout)
        except requests.RequestException as exc:
            logger.debug("Replit sidecar probe failed: %s", exc)
            return False
        return resp.ok or resp.status_code == 404

    def _object_path(self, storage_key: str) -> Tuple[str, str]:
        path = storage_key if storage_key.startswith("/") else f"{self.private_object_dir}/{storage_key}"
        parts = path.lstrip("/").split("/", 1)
        if len(parts) < 2 or not parts[1]:
            raise ValueError(f"Invalid object path: {path}")
        return parts[0], parts[1]

    def _sign(self, storage_key: str, method: str, ttl_seconds: int) -> str:
        operation = "sign_" + method.lower()
        try:
            bucket_name, object_name = self._object_path(storage_key)
        except ValueError as exc:
            raise StorageUnavailableError(operation, storage_key, str(exc)) from exc
        payload = {
            "bucket_name": bucket_name,
            "object_name": object_name,
            "method": method,
            "expires_at": _iso_in(ttl_seconds),
        }
        try:
            resp = requests.post(self.sidecar_endpoint + self.SIGN_PATH, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StorageUnavailableError(operation, storage_key, str(exc)) from exc
        if not resp.ok:
            raise StorageUnavailableError(operation, storage_key, f"sidecar returned {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise StorageUnavailableError(operation, storage_key, "malformed sidecar response") from exc
        if not isinstance(body, dict):
            raise StorageUnavailableError(operation, storage_key, "malformed sidecar response")
        signed_url = body.get("signed_url")
        if not signed_url:
            raise StorageUnavailableError(operation, storage_key, "sidecar response missing signed_url")
        return signed_url

    def get_upload_url(self, prefix: str = "uploads") -> UploadTarget:
        key = f"{prefix.strip('/') or 'uploads'}/{uuid4()}"
        url = self._sign(key, "PUT", UPLOAD_URL_TTL_SECONDS)
        return UploadTarget(upload_url=url, storage_key=key, public_url=f"/objects/{key}")

    def get_download_url(
        self,
        storage_key: str,
        filename: Optional[str] = None,
        expires_in: int = DEFAULT_DOWNLOAD_URL_TTL_SECONDS,
    ) -> str:
        """sidecar 簽章請求不接受 Content-Disposition 參數，filename 不會寫入 URL；
        瀏覽器下載時以 storage key 的最後一段作為檔名。"""
        return self._sign(storage_key, "GET", int(expires_in))

    def exists(self, storage_key: str) -> bool:
        url = self._sign(storage_key, "HEAD", 60)
        try:
            resp = requests.head(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StorageUnavailableError("exists", storage_key, str(exc)) from exc
        if resp.status_code == 404:
            return False
        if not resp.ok:
            raise StorageUnavailableError("exists", storage_key, f"status {resp.status_code}")
        return True

    def delete(self, storage_key: str) -> None:
        url = self._sign(storage_key, "DELETE", 60)
        try:
            resp = requests.delete(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StorageUnavailableError("delete", storage_key, str(exc)) from exc
        if not resp.ok and resp.status_code != 404:
            raise StorageUnavailableError("delete", storage_key, f"status {resp.status_code}")


class UnavailableObjectStore(ObjectStoreGateway):
    """沒有任何可用後端時使用；每次呼叫都回報儲存不可用。"""

    name = "unavailable"

    def _fail(self, operation: str, key: Optional[str] = None):
        raise StorageUnavailableError(operation, key, "no storage backend configured")

    def get_upload_url(self, prefix: str = "uploads") -> UploadTarget:
        self._fail("upload_url")

    def get_download_url(self, storage_key: str, filename: Optional[str] = None, expires_in: int = 0) -> str:
        self._fail("download_url", storage_key)

    def exists(self, storage_key: str) -> bool:
        self._fail("exists", storage_key)

    def delete(self, storage_key: str) -> None:
        self._fail("delete", storage_key)


def _iso_in(seconds: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


def select_object_store(storage) -> ObjectStoreGateway:
    """啟動時依序探測 Replit sidecar、R2 憑證，選出唯一的儲存後端。"""

    timeout = (storage.connect_timeout, storage.read_timeout)
    if storage.replit_configured and ReplitObjectStore.probe(storage.sidecar_endpoint):
        log_event("info", "storage.backend_selected", backend=ReplitObjectStore.name)
        return ReplitObjectStore(
            private_object_dir=storage.private_object_dir,
            sidecar_endpoint=storage.sidecar_endpoint,
            timeout=timeout,
        )
    if storage.r2_configured:
        log_event("info", "storage.backend_selected", backend=R2ObjectStore.name, bucket=storage.r2_bucket_name)
        return R2ObjectStore(
            bucket=storage.r2_bucket_name,
            public_url=storage.r2_public_url,
            account_id=storage.r2_account_id,
            access_key_id=storage.r2_access_key_id,
            secret_access_key=storage.r2_secret_access_key,
            connect_timeout=storage.connect_timeout,
            read_timeout=storage.read_timeout,
        )
    log_event("warning", "storage.backend_unavailable", message="No storage backend available; downloads will fail")
    return UnavailableObjectStore()
