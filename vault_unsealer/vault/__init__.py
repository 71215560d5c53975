"""Vault orchestration — unseal and initialize a vault from a keystore.

Security Note (Threat Model):
    Unseal shares and, optionally, the root token live in the keystore.
    Whoever can read the keystore namespace can unseal the vault; protect
    it accordingly or wrap it with ``EncryptedKeyStore``.
"""

from .unsealer import Unsealer
from .client import VaultClient, HTTPVaultClient
from .config import VaultOptions, EncryptionSettings
from .models import SealStatus, InitResponse, InitResult

__all__ = [
    "Unsealer",
    "VaultClient",
    "HTTPVaultClient",
    "VaultOptions",
    "SealStatus",
    "InitResponse",
    "InitResult",
    "EncryptionSettings",
]
