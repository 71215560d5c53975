"""Shared test doubles for the keystore and vault capabilities."""
import pytest

from vault_unsealer.exceptions import KeyStoreError, VaultAPIError
from vault_unsealer.kv import MemoryKeyStore
from vault_unsealer.vault import InitResponse, SealStatus, VaultClient, VaultOptions


class RecordingKeyStore(MemoryKeyStore):
    """MemoryKeyStore that records calls and can be told to fail."""

    def __init__(self, data=None):
        super().__init__(data)
        self.reads: list[str] = []
        self.writes: list[str] = []
        self.fail_get: set[str] = set()
        self.fail_set: set[str] = set()

    async def get(self, key: str) -> bytes:
        self.reads.append(key)
        if key in self.fail_get:
            raise KeyStoreError(f"backend unavailable for '{key}'")
        return await super().get(key)

    async def set(self, key: str, value: bytes) -> None:
        if key in self.fail_set:
            raise KeyStoreError(f"permission denied for '{key}'")
        self.writes.append(key)
        await super().set(key, value)


class FakeVaultClient(VaultClient):
    """In-memory vault: shares from its own init unseal it at ``threshold``."""

    def __init__(self, threshold: int = 3, shares: list[str] | None = None):
        self.threshold = threshold
        self.valid_shares = set(shares or [])
        self.is_sealed = True
        self.initialized = bool(shares)
        self.progress = 0
        self.unseal_calls: list[str] = []
        self.init_calls: list[tuple[int, int]] = []
        self.status_error: Exception | None = None
        self.unseal_error: Exception | None = None

    async def seal_status(self) -> SealStatus:
        if self.status_error is not None:
            raise self.status_error
        return SealStatus(
            sealed=self.is_sealed,
            progress=self.progress,
            threshold=self.threshold,
            initialized=self.initialized,
        )

    async def unseal(self, share: str) -> SealStatus:
        self.unseal_calls.append(share)
        if self.unseal_error is not None:
            raise self.unseal_error
        if share not in self.valid_shares:
            self.progress = 0
        else:
            self.progress += 1
            if self.progress >= self.threshold:
                self.is_sealed = False
                self.progress = 0
        return SealStatus(
            sealed=self.is_sealed, progress=self.progress, threshold=self.threshold,
        )

    async def init(self, shares: int, threshold: int) -> InitResponse:
        self.init_calls.append((shares, threshold))
        if self.initialized:
            raise VaultAPIError(400, ["Vault is already initialized"])
        keys = [f"share-{i:02d}" for i in range(shares)]
        self.valid_shares = set(keys)
        self.threshold = threshold
        self.initialized = True
        return InitResponse(keys=keys, root_token="s.root-token")


@pytest.fixture
def key_store():
    return RecordingKeyStore()


@pytest.fixture
def vault_client():
    return FakeVaultClient()


@pytest.fixture
def options():
    return VaultOptions(key_prefix="prod", secret_shares=5, secret_threshold=3)
