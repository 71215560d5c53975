"""
Unsealer Configuration — orchestrator options and master key loading.

Orchestrator options come from:
    VAULT_UNSEALER_KEY_PREFIX         = <string>
    VAULT_UNSEALER_SECRET_SHARES      = <integer>
    VAULT_UNSEALER_SECRET_THRESHOLD   = <integer>
    VAULT_UNSEALER_OVERWRITE_EXISTING = true|false
    VAULT_UNSEALER_STORE_ROOT_TOKEN   = true|false

Master keys for the encrypted keystore are read in the format:
    VAULT_UNSEALER_MASTER_KEY_v{N} = <base64-encoded 32-byte key>
    VAULT_UNSEALER_ACTIVE_KEY_ID   = <integer>

Security Note:
    Never log key material. Only log key IDs and version numbers.
"""
import os
import re
import base64
import binascii
import secrets
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("unsealer.vault")

_KEY_ENV_PATTERN = re.compile(r"^VAULT_UNSEALER_MASTER_KEY_v(\d+)$")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(
        f"{name} must be one of "
        f"{sorted(_TRUE_VALUES | _FALSE_VALUES)}, got {raw!r}"
    )


class VaultOptions(BaseModel):
    """Options for one ``Unsealer``; fixed for the orchestrator's lifetime."""

    key_prefix: str = Field(default="vault")
    secret_shares: int = Field(default=5, ge=1)
    secret_threshold: int = Field(default=3, ge=1)
    overwrite_existing: bool = False
    store_root_token: bool = True

    model_config = {"frozen": True}

    @field_validator("key_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Key prefix must be non-empty and free of whitespace."""
        if not v or any(ch.isspace() for ch in v):
            raise ValueError(f"Invalid key prefix: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_threshold(self) -> "VaultOptions":
        """Ensure secret_threshold does not exceed secret_shares."""
        if self.secret_threshold > self.secret_shares:
            raise ValueError(
                f"secret_threshold ({self.secret_threshold}) cannot exceed "
                f"secret_shares ({self.secret_shares})"
            )
        return self

    @classmethod
    def from_env(cls) -> "VaultOptions":
        """Create VaultOptions from VAULT_UNSEALER_* environment variables.

        Unset variables keep the model defaults.

        Raises:
            ValueError: If a boolean variable is not one of 1/0, true/false,
                yes/no or on/off, or a count is not an integer.
        """
        values: dict = {
            "overwrite_existing": _env_bool(
                "VAULT_UNSEALER_OVERWRITE_EXISTING", False
            ),
            "store_root_token": _env_bool(
                "VAULT_UNSEALER_STORE_ROOT_TOKEN", True
            ),
        }
        prefix = os.environ.get("VAULT_UNSEALER_KEY_PREFIX")
        if prefix is not None:
            values["key_prefix"] = prefix
        shares = os.environ.get("VAULT_UNSEALER_SECRET_SHARES")
        if shares is not None:
            values["secret_shares"] = int(shares)
        threshold = os.environ.get("VAULT_UNSEALER_SECRET_THRESHOLD")
        if threshold is not None:
            values["secret_threshold"] = int(threshold)
        return cls(**values)


# ---------------------------------------------------------------------------
# Master keys (encrypted keystore)
# ---------------------------------------------------------------------------

MASTER_KEY_SIZE = 32
SUPPORTED_CIPHERS = ("aesgcm", "chacha20")


def _decode_master_key(name: str, value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as err:
        raise ValueError(f"{name} is not valid base64") from err


class EncryptionSettings(BaseModel):
    """Master keys and cipher for ``EncryptedKeyStore``.

    ``master_keys`` maps a key version to its raw 32-byte key; values are
    written with ``active_key_id`` and read back with whichever version
    they embed.
    """

    master_keys: dict[int, bytes] = Field(repr=False)
    active_key_id: int
    cipher: str = "aesgcm"

    model_config = {"frozen": True}

    @field_validator("master_keys")
    @classmethod
    def validate_master_keys(cls, v: dict[int, bytes]) -> dict[int, bytes]:
        """At least one key, each exactly 32 bytes."""
        if not v:
            raise ValueError(
                "no master keys configured; set "
                "VAULT_UNSEALER_MASTER_KEY_v1=<base64-encoded-32-byte-key>"
            )
        for version, key in v.items():
            if len(key) != MASTER_KEY_SIZE:
                raise ValueError(
                    f"master key v{version} must be {MASTER_KEY_SIZE} bytes, "
                    f"got {len(key)}"
                )
        return v

    @field_validator("cipher")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        if v not in SUPPORTED_CIPHERS:
            raise ValueError(
                f"Unsupported cipher backend: {v!r} "
                f"(expected one of {', '.join(SUPPORTED_CIPHERS)})"
            )
        return v

    @model_validator(mode="after")
    def validate_active_key(self) -> "EncryptionSettings":
        """The active key version must be one of the loaded keys."""
        if self.active_key_id not in self.master_keys:
            raise ValueError(
                f"active key v{self.active_key_id} is not configured "
                f"(available: {sorted(self.master_keys)})"
            )
        return self

    @classmethod
    def from_env(cls, cipher: str = "aesgcm") -> "EncryptionSettings":
        """Read VAULT_UNSEALER_MASTER_KEY_v{N} and VAULT_UNSEALER_ACTIVE_KEY_ID.

        Raises:
            ValueError: If a key is not base64, or the resulting settings
                fail validation (``pydantic.ValidationError``).
        """
        master_keys: dict[int, bytes] = {}
        for name, value in os.environ.items():
            match = _KEY_ENV_PATTERN.match(name)
            if match:
                master_keys[int(match.group(1))] = _decode_master_key(name, value)
        settings = cls(
            master_keys=master_keys,
            active_key_id=os.environ.get("VAULT_UNSEALER_ACTIVE_KEY_ID"),
            cipher=cipher,
        )
        logger.debug(
            "Loaded master key version(s) %s, active v%d",
            sorted(settings.master_keys), settings.active_key_id,
        )
        return settings

    @staticmethod
    def generate_key() -> str:
        """Return a new random master key, base64-encoded for the environment."""
        return base64.b64encode(secrets.token_bytes(MASTER_KEY_SIZE)).decode("ascii")
