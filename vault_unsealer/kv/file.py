"""
FileKeyStore — one file per key under a local directory.

Suited to a mounted volume (e.g. a Kubernetes secret or an encrypted
disk). Combine with ``EncryptedKeyStore`` when the directory itself is
not protected.
"""
import os
import re
import logging
from pathlib import Path

from ..exceptions import KeyStoreError, NotFoundError
from .base import KeyStore

logger = logging.getLogger("unsealer.kv")

_VALID_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class FileKeyStore(KeyStore):
    """Store each value in ``<directory>/<key>``."""

    def __init__(self, directory: str | Path, mode: int = 0o600):
        self._dir = Path(directory)
        self._mode = mode

    def _path(self, key: str) -> Path:
        """Map a key to its file, rejecting names that could escape the directory."""
        if not _VALID_KEY.match(key) or key in (".", ".."):
            raise KeyStoreError(f"invalid key name '{key}'")
        return self._dir / key

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(key) from None
        except OSError as err:
            raise KeyStoreError(f"error reading '{path}': {err}") from err

    async def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        tmp = path.with_name(f".{key}.tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, self._mode)
            with os.fdopen(fd, "wb") as fh:
                fh.write(value)
            os.replace(tmp, path)
        except OSError as err:
            raise KeyStoreError(f"error writing '{path}': {err}") from err
        logger.debug("File keystore wrote key=%s", key)
