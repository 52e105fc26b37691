import re


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def require_text(value, field: str) -> str:
    v = str(value or "").strip()
    if not v:
        raise ValueError(f"{field} required")
    return v


def validate_email(value) -> str:
    v = require_text(value, "buyer_email").lower()
    if not _EMAIL_RE.match(v):
        raise ValueError("buyer_email is not a valid email address")
    return v


def ensure_non_negative_int(value, field: str) -> int:
    if value is None or isinstance(value, bool) or int(value) < 0:
        raise ValueError(f"{field} must be >= 0")
    return int(value)
