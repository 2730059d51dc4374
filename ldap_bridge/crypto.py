from __future__ import annotations

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from .env_settings import get_env

logger = logging.getLogger(__name__)


def _fernet(secret: str | None = None) -> Fernet:
    material = (secret if secret is not None else get_env().secret_key).encode("utf-8")
    key = base64.urlsafe_b64encode(hashlib.sha256(material).digest())
    return Fernet(key)


def seal_secret(value: str, secret: str | None = None) -> str:
    """Encrypt ``value`` for storage; empty stays empty."""
    if not value:
        return ""
    return _fernet(secret).encrypt(value.encode("utf-8")).decode("ascii")


def open_secret(token: str, secret: str | None = None) -> str:
    """Decrypt a sealed value. A token sealed under another key yields ``""``."""
    if not token:
        return ""
    try:
        return _fernet(secret).decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        logger.warning("Stored secret could not be decrypted (secret key changed?)")
        return ""
