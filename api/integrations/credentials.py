"""
At-rest handling of integration secrets.

`api_key` and `api_secret` are stored Fernet-encrypted under `<key>_encrypted`;
every other config value is stored as given. API responses only expose
whether a secret is set.
"""

from __future__ import annotations

from typing import Any

from core import crypto

SECRET_KEYS: tuple[str, ...] = ("api_key", "api_secret")


def _encrypted_key(key: str) -> str:
    return f"{key}_encrypted"


def encrypt_config(config: dict[str, Any]) -> dict[str, Any]:
    stored = {k: v for k, v in config.items() if k not in SECRET_KEYS}
    for key in SECRET_KEYS:
        value = config.get(key)
        if value:
            stored[_encrypted_key(key)] = crypto.encrypt(str(value))
    return stored


def decrypt_config(stored: dict[str, Any]) -> dict[str, Any]:
    config = {k: v for k, v in (stored or {}).items() if k not in {_encrypted_key(s) for s in SECRET_KEYS}}
    for key in SECRET_KEYS:
        token = (stored or {}).get(_encrypted_key(key))
        if token:
            config[key] = crypto.decrypt(str(token))
    return config


def merge_config(stored: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """
    Apply a partial config update; secrets not mentioned keep their stored value.
    """
    merged = dict(stored or {})
    for key, value in updates.items():
        if key in SECRET_KEYS:
            merged.pop(_encrypted_key(key), None)
            if value:
                merged[_encrypted_key(key)] = crypto.encrypt(str(value))
        elif value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def public_config(stored: dict[str, Any]) -> dict[str, Any]:
    hidden = {_encrypted_key(s) for s in SECRET_KEYS}
    config = {k: v for k, v in (stored or {}).items() if k not in hidden}
    for key in SECRET_KEYS:
        config[f"{key}_set"] = bool((stored or {}).get(_encrypted_key(key)))
    return config


def public_integration(row: dict) -> dict:
    return {**row, "config": public_config(row.get("config") or {})}
