"""API key helpers: generation and deterministic hashing."""

import hashlib
import secrets

API_KEY_PREFIX = "msk_"


def hash_api_key(raw_key: str) -> str:
    """Hex SHA-256 digest of the raw key, as stored in ``api_keys.key``."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key() -> str:
    """Generate a cryptographically secure 256-bit API key."""
    return API_KEY_PREFIX + secrets.token_urlsafe(32)
