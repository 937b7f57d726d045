"""
Crypto helpers for storing the session token at rest.

Uses Fernet (symmetric AES + HMAC) via the cryptography library. The key
comes from an environment variable when set; otherwise a key file is
generated next to the credential file with mode 0600.
"""

from __future__ import annotations

import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from .exceptions import CredentialStoreError
from .logger import get_logger

logger = get_logger(__name__)


def load_or_create_key(key_env: str, key_path: Path) -> bytes:
    """Return the Fernet key from the environment, or from (or into) key_path."""
    env_key = os.getenv(key_env) or ""
    if env_key:
        return env_key.encode("utf-8")

    try:
        if key_path.exists():
            return key_path.read_bytes().strip()
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        key_path.write_bytes(key)
        key_path.chmod(0o600)
        logger.info("Generated credential encryption key", path=str(key_path))
        return key
    except OSError as e:
        raise CredentialStoreError(f"Could not load encryption key: {e}") from e


def _get_fernet(key: bytes) -> Fernet:
    try:
        return Fernet(key)
    except ValueError as e:
        raise CredentialStoreError(f"Invalid encryption key: {e}") from e


def encrypt_token(key: bytes, plain: str) -> str:
    """Encrypt a token string for persistent storage."""
    return _get_fernet(key).encrypt(plain.encode("utf-8")).decode("utf-8")


def decrypt_token(key: bytes, ciphertext: str) -> str:
    """Decrypt a previously encrypted token."""
    f = _get_fernet(key)
    try:
        return f.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        raise CredentialStoreError("Stored credential could not be decrypted")
