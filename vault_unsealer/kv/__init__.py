"""Keystore backends for unseal shares and the root token."""

from .base import KeyStore, ACCESS_CHECK_KEY
from .memory import MemoryKeyStore
from .file import FileKeyStore
from .redis import RedisKeyStore
from .encrypted import EncryptedKeyStore
from ..exceptions import NotFoundError, KeyStoreError, KeyStoreAccessError

__all__ = [
    "KeyStore",
    "ACCESS_CHECK_KEY",
    "MemoryKeyStore",
    "FileKeyStore",
    "RedisKeyStore",
    "EncryptedKeyStore",
    "NotFoundError",
    "KeyStoreError",
    "KeyStoreAccessError",
]
