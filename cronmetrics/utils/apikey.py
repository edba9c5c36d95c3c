"""
Per-job API keys: `cm_` followed by 32 random bytes in lowercase,
unpadded base32 (52 characters).
"""
import base64
import binascii
import hmac
import secrets
from typing import Iterable

API_KEY_PREFIX = "cm_"
_KEY_BYTES = 32
_ENCODED_LEN = 52


def generate_api_key() -> str:
    raw = secrets.token_bytes(_KEY_BYTES)
    encoded = base64.b32encode(raw).decode("ascii").rstrip("=").lower()
    return f"{API_KEY_PREFIX}{encoded}"


def validate_api_key_format(api_key: str) -> bool:
    """Check prefix, length and base32 alphabet of a generated key"""
    if not api_key or not api_key.startswith(API_KEY_PREFIX):
        return False

    key_part = api_key[len(API_KEY_PREFIX):]
    if len(key_part) != _ENCODED_LEN:
        return False

    # 52 chars is not a multiple of 8; restore padding before decoding
    padded = key_part.upper() + "=" * (-len(key_part) % 8)
    try:
        base64.b32decode(padded)
    except (binascii.Error, ValueError):
        return False
    return True


def mask_api_key(api_key: str) -> str:
    if not api_key or len(api_key) <= 10:
        return "***"
    return f"{api_key[:6]}...{api_key[-4:]}"


def matches_any(token: str, keys: Iterable[str]) -> bool:
    """Constant-time membership test against configured keys"""
    found = False
    for key in keys:
        if hmac.compare_digest(token.encode("utf-8"), key.encode("utf-8")):
            found = True
    return found
