"""
Encryption helpers for custody private keys stored in MongoDB.
"""
import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .config import config as app_config

logger = logging.getLogger(__name__)

ENC_PREFIX = "enc:v1:"

_fernet: Optional[Fernet] = None


class EncryptionKeyMissingError(RuntimeError):
    """Raised when ENCRYPTION_KEY is not configured."""


class DecryptionError(RuntimeError):
    """Raised when a stored key cannot be decrypted."""


def _derive_fernet_key(raw_key: str) -> bytes:
    """Derive a Fernet-compatible key from arbitrary input."""
    digest = hashlib.sha256(raw_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is not None:
        return _fernet

    if not app_config.ENCRYPTION_KEY:
        raise EncryptionKeyMissingError("ENCRYPTION_KEY is not configured")

    _fernet = Fernet(_derive_fernet_key(app_config.ENCRYPTION_KEY))
    return _fernet


def reset_cipher():
    """Drop the cached cipher (after rotating ENCRYPTION_KEY)."""
    global _fernet
    _fernet = None


def is_encrypted(value: Optional[str]) -> bool:
    return bool(value and value.startswith(ENC_PREFIX))


def encrypt_private_key(value: str) -> str:
    """Encrypt a plaintext private key or seed for storage."""
    if not value:
        raise ValueError("Cannot encrypt an empty key")
    if is_encrypted(value):
        return value
    token = _get_fernet().encrypt(value.encode("utf-8")).decode("utf-8")
    return ENC_PREFIX + token


def decrypt_private_key(value: str) -> str:
    """
    Decrypt a stored private key.

    Raises:
        DecryptionError: if the value is not an encrypted key or the token is invalid
    """
    if not is_encrypted(value):
        raise DecryptionError("Stored key is not encrypted")
    token = value[len(ENC_PREFIX):]
    try:
        return _get_fernet().decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Failed to decrypt stored private key (invalid token)")
        raise DecryptionError("Invalid encrypted key") from e
