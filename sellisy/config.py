"""Sellisy 應用設定模組。"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .common.config import AppConfig, DeliveryConfig, load_env


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass
class StorageSettings:
    """物件儲存後端所需的設定值（R2 與 Replit sidecar）。"""

    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: str = "sellisy-storage"
    r2_public_url: str = "https://cdn.sellisy.com"
    private_object_dir: Optional[str] = None
    public_object_search_paths: Optional[str] = None
    sidecar_endpoint: str = "http://127.0.0.1:1106"
    connect_timeout: float = 5.0
    read_timeout: float = 10.0

    @property
    def r2_configured(self) -> bool:
        return bool(self.r2_account_id and self.r2_access_key_id and self.r2_secret_access_key)

    @property
    def replit_configured(self) -> bool:
        return bool(self.private_object_dir and self.public_object_search_paths)

    @classmethod
    def from_env(cls) -> "StorageSettings":
        return cls(
            r2_account_id=os.environ.get("R2_ACCOUNT_ID"),
            r2_access_key_id=os.environ.get("R2_ACCESS_KEY_ID"),
            r2_secret_access_key=os.environ.get("R2_SECRET_ACCESS_KEY"),
            r2_bucket_name=os.environ.get("R2_BUCKET_NAME", "sellisy-storage"),
            r2_public_url=os.environ.get("R2_PUBLIC_URL", "https://cdn.sellisy.com"),
            private_object_dir=os.environ.get("PRIVATE_OBJECT_DIR"),
            public_object_search_paths=os.environ.get("PUBLIC_OBJECT_SEARCH_PATHS"),
            sidecar_endpoint=os.environ.get("REPLIT_SIDECAR_ENDPOINT", "http://127.0.0.1:1106"),
            connect_timeout=_env_float("STORAGE_CONNECT_TIMEOUT", 5.0),
            read_timeout=_env_float("STORAGE_READ_TIMEOUT", 10.0),
        )


@dataclass
class MailSettings:
    """買家通知信（SendGrid）設定值。"""

    sendgrid_api_key: Optional[str] = None
    from_email: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 10.0

    @property
    def sendgrid_configured(self) -> bool:
        return bool(self.sendgrid_api_key and self.from_email)

    @classmethod
    def from_env(cls) -> "MailSettings":
        return cls(
            sendgrid_api_key=os.environ.get("SENDGRID_API_KEY"),
            from_email=os.environ.get("SELLISY_MAIL_FROM"),
            connect_timeout=_env_float("MAIL_CONNECT_TIMEOUT", 5.0),
            read_timeout=_env_float("MAIL_READ_TIMEOUT", 10.0),
        )


@dataclass
class SellisyConfig:
    """封裝 Sellisy 交付服務的設定值。"""

    secret_key: str
    admin_username: str
    admin_password: str
    app: AppConfig
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    storage: StorageSettings = field(default_factory=StorageSettings)
    mail: MailSettings = field(default_factory=MailSettings)

    @property
    def database_url(self) -> str:
        return self.app.database_url

    @property
    def log_level(self) -> str:
        return self.app.log_level

    @classmethod
    def load(cls, env_file: Optional[Path] = None) -> "SellisyConfig":
        """先載入 .env，再從環境變數建構設定。"""

        load_dotenv(env_file or Path.cwd() / ".env")
        app = load_env()
        return cls(
            secret_key=os.environ.get("SECRET_KEY", app.secret_key),
            admin_username=os.environ.get("SELLISY_ADMIN_USER", "admin"),
            admin_password=os.environ.get("SELLISY_ADMIN_PASS", ""),
            app=app,
            delivery=DeliveryConfig.from_env(),
            storage=StorageSettings.from_env(),
            mail=MailSettings.from_env(),
        )
