"""
Credential storage for the session token.

One opaque token lives under a fixed storage key in a JSON file. The value
is Fernet-encrypted and the file is written atomically with mode 0600 so
the token does not sit on disk in plain text.

Storage failures raise CredentialStoreError; nothing here retries.
"""

from __future__ import annotations

import asyncio
import json
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from ..utils.crypto import decrypt_token, encrypt_token
from ..utils.exceptions import CredentialStoreError
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_STORAGE_KEY = "userToken"


class CredentialStore(ABC):
    """Async key/value persistence for a single session token.

    All operations are idempotent: save overwrites, clear on an empty store
    is a no-op, and read after clear returns None.
    """

    @abstractmethod
    async def save(self, token: str) -> None:
        ...

    @abstractmethod
    async def read(self) -> Optional[str]:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


def _atomic_write(path: Path, payload: Dict[str, str]) -> None:
    """Atomically write JSON to the target path with user-only permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w", dir=str(path.parent), delete=False, encoding="utf-8"
    ) as tf:
        json.dump(payload, tf)
        temp_path = Path(tf.name)
    try:
        temp_path.chmod(0o600)
        shutil.move(str(temp_path), str(path))
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


class EncryptedFileCredentialStore(CredentialStore):
    """Fernet-encrypted token file (user read/write only)"""

    def __init__(self, path: Path, key: bytes, storage_key: str = DEFAULT_STORAGE_KEY):
        self.path = Path(path)
        self.storage_key = storage_key
        self._key = key
        self._lock = asyncio.Lock()

    def _read_file(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise CredentialStoreError(f"Could not read credential file: {e}") from e
        if not isinstance(data, dict):
            raise CredentialStoreError("Credential file is not a JSON object")
        return data

    def _save_sync(self, token: str) -> None:
        data = self._read_file()
        data[self.storage_key] = encrypt_token(self._key, token)
        try:
            _atomic_write(self.path, data)
        except OSError as e:
            raise CredentialStoreError(f"Could not write credential file: {e}") from e

    def _read_sync(self) -> Optional[str]:
        ciphertext = self._read_file().get(self.storage_key)
        if not ciphertext:
            return None
        if not isinstance(ciphertext, str):
            raise CredentialStoreError("Stored credential has an unexpected format")
        return decrypt_token(self._key, ciphertext)

    def _clear_sync(self) -> None:
        if not self.path.exists():
            return
        try:
            data = self._read_file()
        except CredentialStoreError:
            # Unreadable file still holds a credential slot; drop it entirely
            data = {}
        data.pop(self.storage_key, None)
        try:
            if data:
                _atomic_write(self.path, data)
            else:
                self.path.unlink(missing_ok=True)
        except OSError as e:
            raise CredentialStoreError(f"Could not clear credential file: {e}") from e

    async def save(self, token: str) -> None:
        if not token:
            raise CredentialStoreError("Refusing to store an empty token")
        async with self._lock:
            await asyncio.to_thread(self._save_sync, token)
        logger.debug("Credential stored", path=str(self.path))

    async def read(self) -> Optional[str]:
        async with self._lock:
            return await asyncio.to_thread(self._read_sync)

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._clear_sync)
        logger.debug("Credential cleared", path=str(self.path))
