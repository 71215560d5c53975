"""Vault Unsealer.

Drives a vault server from uninitialized/sealed to unsealed using shares
kept in a pluggable keystore.
"""
from .version import __version__
from .exceptions import UnsealerError
from .vault import Unsealer, VaultOptions, HTTPVaultClient

__all__ = [
    "__version__",
    "Unsealer",
    "UnsealerError",
    "VaultOptions",
    "HTTPVaultClient",
]
