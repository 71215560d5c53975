"""
EncryptedKeyStore — AES-GCM envelope around another KeyStore.

Values are encrypted before they reach the wrapped backend:
    HKDF(MASTER_KEY_vN, "unsealer-kv-vN") → AEAD → [key_id 2B|nonce 12B|payload+tag]

The master key version is embedded in every value, so older values stay
readable after the active key changes as long as the old version is
still loaded.

Security Note:
    Never log plaintext or ciphertext values.
    The key name is bound as associated data, so a ciphertext copied to a
    different key fails authentication.
"""
import os
import struct
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..exceptions import KeyStoreError
from .base import KeyStore

logger = logging.getLogger("unsealer.kv")

NONCE_SIZE = 12  # 96-bit nonce
KEY_ID_SIZE = 2  # uint16 big-endian
KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte encryption key using HKDF-SHA256.

    Args:
        seed: Master key bytes.
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


def _context(key_id: int) -> str:
    return f"unsealer-kv-v{key_id}"


def encrypt_value(
    plaintext: bytes,
    key_id: int,
    master_key: bytes,
    associated_data: bytes | None = None,
    cipher: str = "aesgcm",
) -> bytes:
    """Encrypt plaintext with embedded key version.

    Format: [key_id 2B uint16 BE][nonce 12B][encrypted_payload + tag]

    Args:
        plaintext: Data to encrypt.
        key_id: Master key version identifier.
        master_key: Raw 32-byte master key for this version.
        associated_data: Authenticated but unencrypted data (the key name).
        cipher: ``aesgcm`` or ``chacha20``.

    Returns:
        Ciphertext bytes with key_id prefix.
    """
    aead = _CIPHERS[cipher](derive_key(master_key, _context(key_id)))
    nonce = os.urandom(NONCE_SIZE)
    ct = aead.encrypt(nonce, plaintext, associated_data)
    return struct.pack("!H", key_id) + nonce + ct


def decrypt_value(
    ciphertext: bytes,
    master_keys: dict[int, bytes],
    associated_data: bytes | None = None,
    cipher: str = "aesgcm",
) -> bytes:
    """Decrypt a value produced by ``encrypt_value``.

    Raises:
        ValueError: If the ciphertext is truncated.
        KeyError: If the embedded key_id is not in master_keys.
        cryptography.exceptions.InvalidTag: If authentication fails.
    """
    _min = KEY_ID_SIZE + NONCE_SIZE + TAG_SIZE
    if len(ciphertext) < _min:
        raise ValueError(
            f"ciphertext too short: {len(ciphertext)} bytes (minimum {_min})"
        )
    key_id = struct.unpack("!H", ciphertext[:KEY_ID_SIZE])[0]
    if key_id not in master_keys:
        raise KeyError(
            f"Master key version {key_id} not found in provided keys"
        )
    aead = _CIPHERS[cipher](derive_key(master_keys[key_id], _context(key_id)))
    nonce = ciphertext[KEY_ID_SIZE:KEY_ID_SIZE + NONCE_SIZE]
    ct = ciphertext[KEY_ID_SIZE + NONCE_SIZE:]
    return aead.decrypt(nonce, ct, associated_data)


class EncryptedKeyStore(KeyStore):
    """Encrypt values on ``set`` and decrypt them on ``get``.

    ``NotFoundError`` from the wrapped store passes through untouched so
    the orchestrator can still tell a missing share from a broken one.
    """

    def __init__(
        self,
        store: KeyStore,
        master_keys: dict[int, bytes],
        active_key_id: int,
        cipher: str = "aesgcm",
    ):
        if active_key_id not in master_keys:
            raise ValueError(
                f"active_key_id {active_key_id} not found in master_keys "
                f"(available: {sorted(master_keys.keys())})"
            )
        if cipher not in _CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {cipher}")
        self._store = store
        self._master_keys = master_keys
        self._active_key_id = active_key_id
        self._cipher = cipher

    async def get(self, key: str) -> bytes:
        ciphertext = await self._store.get(key)
        try:
            return decrypt_value(
                ciphertext, self._master_keys,
                associated_data=key.encode("utf-8"), cipher=self._cipher,
            )
        except (ValueError, KeyError, InvalidTag) as err:
            raise KeyStoreError(
                f"unable to decrypt value of key '{key}': {err!r}"
            ) from err

    async def set(self, key: str, value: bytes) -> None:
        ciphertext = encrypt_value(
            value,
            self._active_key_id,
            self._master_keys[self._active_key_id],
            associated_data=key.encode("utf-8"),
            cipher=self._cipher,
        )
        await self._store.set(key, ciphertext)
        logger.debug(
            "Encrypted keystore wrote key=%s (key_version=%d)",
            key, self._active_key_id,
        )

    async def close(self) -> None:
        await self._store.close()
