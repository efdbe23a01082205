"""
TOTP (RFC 6238) and backup-code helpers.

Authenticator apps expect base32 secrets, SHA1, 6 digits and a 30 s period.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import struct
import time
from urllib.parse import quote, urlencode

ISSUER = "MusicPromoCRM"
DIGITS = 6
PERIOD_S = 30
VALID_WINDOW = 1

BACKUP_CODE_COUNT = 10
BACKUP_CODE_LENGTH = 10
BACKUP_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_secret(num_bytes: int = 20) -> str:
    return base64.b32encode(secrets.token_bytes(num_bytes)).decode("ascii").rstrip("=")


def _secret_bytes(secret: str) -> bytes:
    cleaned = secret.replace(" ", "").upper()
    cleaned += "=" * (-len(cleaned) % 8)
    return base64.b32decode(cleaned, casefold=True)


def _code_at(key: bytes, counter: int) -> str:
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    value = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
    return str(value % (10**DIGITS)).zfill(DIGITS)


def code_for(secret: str, *, at: float | None = None) -> str:
    counter = int(time.time() if at is None else at) // PERIOD_S
    return _code_at(_secret_bytes(secret), counter)


def verify(secret: str, code: str, *, at: float | None = None, window: int = VALID_WINDOW) -> bool:
    """
    Accept the code for the current period or any of `window` periods around it.
    """
    candidate = "".join(ch for ch in (code or "") if ch.isdigit())
    if len(candidate) != DIGITS or not secret:
        return False
    counter = int(time.time() if at is None else at) // PERIOD_S
    key = _secret_bytes(secret)
    return any(
        hmac.compare_digest(_code_at(key, counter + step), candidate)
        for step in range(-window, window + 1)
    )


def otpauth_url(secret: str, account: str, *, issuer: str = ISSUER) -> str:
    label = quote(f"{issuer}:{account}")
    query = urlencode({"secret": secret, "issuer": issuer, "algorithm": "SHA1", "digits": DIGITS, "period": PERIOD_S})
    return f"otpauth://totp/{label}?{query}"


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    codes: set[str] = set()
    while len(codes) < count:
        codes.add("".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH)))
    return sorted(codes)


def normalize_backup_code(code: str) -> str:
    return "".join(ch for ch in (code or "").upper() if ch.isalnum())


def hash_backup_code(code: str) -> str:
    return hashlib.sha256(normalize_backup_code(code).encode("utf-8")).hexdigest()
