"""
Symmetric encryption for secrets stored in the database (Fernet).

`INTEGRATION_ENCRYPTION_KEY` must be a urlsafe base64 32-byte key
(`Fernet.generate_key()`). Without it a process-local key is generated, so
values written in development do not survive a restart.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from .config import env_str

logger = logging.getLogger(__name__)


class SecretsError(RuntimeError):
    pass


@lru_cache(maxsize=1)
def _cipher() -> Fernet:
    key = env_str("INTEGRATION_ENCRYPTION_KEY")
    if not key:
        logger.warning("encryption_key_missing generating an ephemeral key; set INTEGRATION_ENCRYPTION_KEY")
        key = Fernet.generate_key().decode()
    try:
        return Fernet(key.encode())
    except ValueError as exc:
        raise SecretsError("INTEGRATION_ENCRYPTION_KEY is not a valid Fernet key.") from exc


def reset_cipher() -> None:
    _cipher.cache_clear()


def encrypt(value: str) -> str:
    return _cipher().encrypt(value.encode("utf-8")).decode("ascii")


def decrypt(token: str) -> str:
    try:
        return _cipher().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken as exc:
        raise SecretsError("Stored secret could not be decrypted.") from exc


def generate_key() -> str:
    return Fernet.generate_key().decode()
