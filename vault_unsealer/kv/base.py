"""
KeyStore — capability for storing opaque byte values by string key.

Backends implement ``get`` and ``set``. The read/write access checks
(``test`` and ``check_write_access``) have a default implementation
that writes a known value and reads it back; backends may override
them when the storage offers a cheaper check.

Security Note:
    Never log stored values. Only log key names.
"""
import logging
from abc import ABC, abstractmethod

from ..exceptions import KeyStoreAccessError, KeyStoreError

logger = logging.getLogger("unsealer.kv")

# Backend-level key used by ``check_write_access``.
ACCESS_CHECK_KEY = "vault-unsealer-dummy-file"
ACCESS_CHECK_VALUE = b"read write access check"


class KeyStore(ABC):
    """Abstract key-value store used to persist unseal shares."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the value stored at ``key``.

        Raises:
            NotFoundError: If nothing is stored at ``key``.
            KeyStoreError: On any other backend failure.
        """

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """Store ``value`` at ``key``, replacing any previous value."""

    async def test(self, key: str) -> None:
        """Write a check value at ``key`` and read it back.

        Raises:
            KeyStoreAccessError: If the write or read fails, or the value
                read back differs from the one written.
        """
        try:
            await self.set(key, ACCESS_CHECK_VALUE)
            value = await self.get(key)
        except KeyStoreError as err:
            raise KeyStoreAccessError(
                f"access check of key '{key}' failed: {err}"
            ) from err
        if value != ACCESS_CHECK_VALUE:
            raise KeyStoreAccessError(
                f"access check of key '{key}' read back a different value"
            )
        logger.debug("Keystore access check succeeded: key=%s", key)

    async def check_write_access(self) -> None:
        """Verify the backend can be written and read."""
        await self.test(ACCESS_CHECK_KEY)

    async def close(self) -> None:
        """Release backend resources. No-op unless the backend owns a connection."""
