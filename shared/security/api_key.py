"""
Add-in credentials: long-lived API keys (legacy) and expiring add-in session
tokens. Only a SHA-256 digest of either is ever stored; the raw value is shown
to the user once, at creation.
"""
import hashlib
import secrets

API_KEY_PREFIX = "lod_"
SESSION_TOKEN_PREFIX = "lods_"


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


def generate_session_token() -> str:
    return SESSION_TOKEN_PREFIX + secrets.token_urlsafe(32)


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()

