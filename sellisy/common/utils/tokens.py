import hashlib
import secrets


# 32 random bytes -> 256 bits of entropy, 43 url-safe characters
TOKEN_BYTES = 32


def generate_raw_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(raw_token: str) -> str:
    """One-way fingerprint stored in place of the raw token."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()
