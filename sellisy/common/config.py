import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    public_base_url: str

    def get_download_url(self, raw_token: str) -> str:
        base = self.public_base_url.rstrip("/")
        return f"{base}/api/download/{raw_token}"


@dataclass(frozen=True)
class DeliveryConfig:
    """TTL and fan-out settings injected into the download token service."""

    token_ttl_seconds: int = 24 * 60 * 60
    presigned_url_ttl_seconds: int = 60 * 60
    max_presign_workers: int = 8
    presign_retry_backoff_seconds: float = 0.25

    def __post_init__(self) -> None:
        ensure_positive(self.token_ttl_seconds, "token_ttl_seconds")
        ensure_positive(self.presigned_url_ttl_seconds, "presigned_url_ttl_seconds")
        ensure_positive(self.max_presign_workers, "max_presign_workers")
        if self.presign_retry_backoff_seconds < 0:
            raise ValueError("presign_retry_backoff_seconds must be >= 0")

    @classmethod
    def from_env(cls) -> "DeliveryConfig":
        return cls(
            token_ttl_seconds=_env_int("DOWNLOAD_TOKEN_TTL_SECONDS", cls.token_ttl_seconds),
            presigned_url_ttl_seconds=_env_int("PRESIGNED_URL_TTL_SECONDS", cls.presigned_url_ttl_seconds),
            max_presign_workers=_env_int("PRESIGN_MAX_WORKERS", cls.max_presign_workers),
            presign_retry_backoff_seconds=float(
                os.getenv("PRESIGN_RETRY_BACKOFF_SECONDS", cls.presign_retry_backoff_seconds)
            ),
        )


def ensure_positive(value: Optional[int], field: str) -> int:
    if value is None or int(value) <= 0:
        raise ValueError(f"{field} must be > 0")
    return int(value)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def validate_log_level(value: Optional[str]) -> str:
    v = (value or "INFO").strip().upper()
    if v not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
        raise ValueError(f"Invalid log level: {value}")
    return v


def load_env() -> AppConfig:
    database_url = os.getenv("DATABASE_URL", "sqlite:///data/sellisy.db")
    secret_key = os.getenv("SECRET_KEY", "dev_secret")
    log_level = validate_log_level(os.getenv("LOG_LEVEL"))
    public_base_url = (os.getenv("PUBLIC_BASE_URL") or "http://127.0.0.1:5000").rstrip("/")
    return AppConfig(
        database_url=database_url,
        secret_key=secret_key,
        log_level=log_level,
        public_base_url=public_base_url,
    )
