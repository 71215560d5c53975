"""
Error hierarchy for the unsealer.

Keystore backends raise ``KeyStoreError`` subclasses, the HTTP vault
client raises ``VaultAPIError``. The orchestrator wraps whatever its
collaborators raise into an ``UnsealerError`` subclass naming the
operation, and chains the original exception as ``__cause__``.
"""


# ---------------------------------------------------------------------------
# Keystore errors
# ---------------------------------------------------------------------------

class KeyStoreError(Exception):
    """Base class for keystore backend failures."""


class NotFoundError(KeyStoreError):
    """Raised by ``KeyStore.get`` when the key holds no value."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"key '{key}' not found")


class KeyStoreAccessError(KeyStoreError):
    """A read/write access check against the keystore failed."""


# ---------------------------------------------------------------------------
# Vault API errors
# ---------------------------------------------------------------------------

class VaultAPIError(Exception):
    """Non-2xx response from the vault HTTP API."""

    def __init__(self, status: int, errors: list[str] | None = None):
        self.status = status
        self.errors = errors or []
        detail = "; ".join(self.errors) or "no error detail"
        super().__init__(f"vault returned HTTP {status}: {detail}")


# ---------------------------------------------------------------------------
# Orchestrator errors
# ---------------------------------------------------------------------------

class UnsealerError(Exception):
    """Base class for every error raised by ``Unsealer`` operations."""


class StatusCheckError(UnsealerError):
    """Querying the vault seal status failed."""


class KeyRetrievalError(UnsealerError):
    """Fetching an unseal share from the keystore failed."""

    def __init__(self, message: str, key: str):
        self.key = key
        super().__init__(message)


class SharesExhaustedError(KeyRetrievalError):
    """No share is stored at the next index: the keystore ran out of shares."""


class UnsealSubmitError(UnsealerError):
    """Submitting an unseal share to the vault failed."""


class ProgressResetError(UnsealerError):
    """The vault reset unseal progress to 0 after a submission."""

    def __init__(self, message: str, key: str):
        self.key = key
        super().__init__(message)


class InitPrecheckError(UnsealerError):
    """The keystore access check before initialization failed."""


class PreexistingKeyError(UnsealerError):
    """A key that initialization would write is already present (or unreadable)."""

    def __init__(self, message: str, key: str):
        self.key = key
        super().__init__(message)


class VaultInitError(UnsealerError):
    """The vault refused or failed the initialization request."""


class KeyPersistError(UnsealerError):
    """Writing an unseal share to the keystore failed.

    ``written`` lists the keys persisted before the failure; they are
    not rolled back.
    """

    def __init__(self, message: str, key: str, written: list[str]):
        self.key = key
        self.written = list(written)
        super().__init__(message)


class RootPersistError(UnsealerError):
    """Writing the root token to the keystore failed.

    The token is attached as ``root_token`` since it cannot be recovered
    from the vault afterwards.
    """

    def __init__(self, message: str, key: str, root_token: str):
        self.key = key
        self.root_token = root_token
        super().__init__(message)


class AccessCheckError(UnsealerError):
    """The standalone keystore read/write check failed."""
