"""
Tests for the Unsealer orchestrator.

Tests cover:
- Keystore key naming
- sealed() status reporting and error wrapping
- unseal() share submission loop and its three exit paths
- init() prechecks, persistence, overwrite policy and root token handling
- check_read_write_access()
"""
import logging

import pytest

from vault_unsealer.exceptions import (
    AccessCheckError,
    InitPrecheckError,
    KeyPersistError,
    KeyRetrievalError,
    KeyStoreError,
    PreexistingKeyError,
    ProgressResetError,
    RootPersistError,
    SharesExhaustedError,
    StatusCheckError,
    UnsealSubmitError,
    VaultAPIError,
    VaultInitError,
)
from vault_unsealer.kv import ACCESS_CHECK_KEY
from vault_unsealer.vault import Unsealer, VaultOptions

from .conftest import FakeVaultClient, RecordingKeyStore


def _stored_shares(count: int, prefix: str = "prod") -> dict[str, bytes]:
    return {
        f"{prefix}-unseal-{i}": f"share-{i:02d}".encode() for i in range(count)
    }


# --- Test Key Naming ---

class TestKeyNaming:
    """Tests for the persisted key naming contract."""

    def test_unseal_key_names(self, key_store, vault_client, options):
        """Unseal keys are {prefix}-unseal-{index}."""
        unsealer = Unsealer(key_store, vault_client, options)
        assert unsealer.unseal_key_for_id(0) == "prod-unseal-0"
        assert unsealer.unseal_key_for_id(12) == "prod-unseal-12"

    def test_root_and_test_key_names(self, key_store, vault_client, options):
        """Root and access-check keys share the prefix."""
        unsealer = Unsealer(key_store, vault_client, options)
        assert unsealer.root_token_key() == "prod-root"
        assert unsealer.test_key() == "prod-test"


# --- Test sealed() ---

class TestSealed:
    """Tests for seal status reporting."""

    @pytest.mark.asyncio
    async def test_reports_sealed(self, key_store, vault_client, options):
        """A sealed vault reports True."""
        unsealer = Unsealer(key_store, vault_client, options)
        assert await unsealer.sealed() is True

    @pytest.mark.asyncio
    async def test_reports_unsealed(self, key_store, vault_client, options):
        """An unsealed vault reports False."""
        vault_client.is_sealed = False
        unsealer = Unsealer(key_store, vault_client, options)
        assert await unsealer.sealed() is False

    @pytest.mark.asyncio
    async def test_status_failure_is_wrapped(self, key_store, vault_client, options):
        """Status errors surface as StatusCheckError with the cause chained."""
        cause = ConnectionError("connection refused")
        vault_client.status_error = cause
        unsealer = Unsealer(key_store, vault_client, options)
        with pytest.raises(StatusCheckError) as exc_info:
            await unsealer.sealed()
        assert exc_info.value.__cause__ is cause


# --- Test unseal() ---

class TestUnseal:
    """Tests for the share submission loop."""

    @pytest.mark.asyncio
    async def test_unseals_with_threshold_shares(self, options):
        """Exactly threshold reads and submissions unseal the vault."""
        key_store = RecordingKeyStore(_stored_shares(5))
        client = FakeVaultClient(
            threshold=3, shares=[f"share-{i:02d}" for i in range(5)],
        )
        unsealer = Unsealer(key_store, client, options)

        await unsealer.unseal()

        assert client.is_sealed is False
        assert key_store.reads == ["prod-unseal-0", "prod-unseal-1", "prod-unseal-2"]
        assert client.unseal_calls == ["share-00", "share-01", "share-02"]

    @pytest.mark.asyncio
    async def test_missing_first_share_never_submits(self, key_store, options):
        """A missing first share fails before any unseal request."""
        client = FakeVaultClient(threshold=3, shares=["share-00"])
        unsealer = Unsealer(key_store, client, options)

        with pytest.raises(SharesExhaustedError) as exc_info:
            await unsealer.unseal()

        assert exc_info.value.key == "prod-unseal-0"
        assert client.unseal_calls == []

    @pytest.mark.asyncio
    async def test_runs_out_of_shares(self, options):
        """Fewer stored shares than the threshold ends in SharesExhaustedError."""
        key_store = RecordingKeyStore(_stored_shares(2))
        client = FakeVaultClient(
            threshold=3, shares=[f"share-{i:02d}" for i in range(5)],
        )
        unsealer = Unsealer(key_store, client, options)

        with pytest.raises(SharesExhaustedError) as exc_info:
            await unsealer.unseal()

        assert exc_info.value.key == "prod-unseal-2"
        assert isinstance(exc_info.value, KeyRetrievalError)
        assert len(client.unseal_calls) == 2
        assert client.is_sealed is True

    @pytest.mark.asyncio
    async def test_progress_reset_is_terminal(self, options):
        """An invalid share stops the loop at that index."""
        data = _stored_shares(5)
        data["prod-unseal-1"] = b"bogus"
        key_store = RecordingKeyStore(data)
        client = FakeVaultClient(
            threshold=3, shares=[f"share-{i:02d}" for i in range(5)],
        )
        unsealer = Unsealer(key_store, client, options)

        with pytest.raises(ProgressResetError) as exc_info:
            await unsealer.unseal()

        assert exc_info.value.key == "prod-unseal-1"
        assert key_store.reads == ["prod-unseal-0", "prod-unseal-1"]
        assert client.unseal_calls == ["share-00", "bogus"]

    @pytest.mark.asyncio
    async def test_backend_failure_is_not_exhaustion(self, options):
        """Backend errors raise KeyRetrievalError, not SharesExhaustedError."""
        key_store = RecordingKeyStore(_stored_shares(5))
        key_store.fail_get.add("prod-unseal-0")
        client = FakeVaultClient(threshold=3, shares=["share-00"])
        unsealer = Unsealer(key_store, client, options)

        with pytest.raises(KeyRetrievalError) as exc_info:
            await unsealer.unseal()

        assert not isinstance(exc_info.value, SharesExhaustedError)
        assert isinstance(exc_info.value.__cause__, KeyStoreError)
        assert client.unseal_calls == []

    @pytest.mark.asyncio
    async def test_submit_failure(self, options):
        """A failing unseal request raises UnsealSubmitError."""
        key_store = RecordingKeyStore(_stored_shares(5))
        client = FakeVaultClient(threshold=3, shares=["share-00"])
        client.unseal_error = VaultAPIError(503, ["Vault is sealed"])
        unsealer = Unsealer(key_store, client, options)

        with pytest.raises(UnsealSubmitError) as exc_info:
            await unsealer.unseal()

        assert isinstance(exc_info.value.__cause__, VaultAPIError)
        assert key_store.reads == ["prod-unseal-0"]


# --- Test init() ---

class TestInit:
    """Tests for first-time initialization."""

    @pytest.mark.asyncio
    async def test_fresh_init_stores_shares_and_root(
        self, key_store, vault_client, options,
    ):
        """All shares land at their index, in order, plus the root token."""
        unsealer = Unsealer(key_store, vault_client, options)

        result = await unsealer.init()

        assert vault_client.init_calls == [(5, 3)]
        for i in range(5):
            assert await key_store.get(f"prod-unseal-{i}") == f"share-{i:02d}".encode()
        assert await key_store.get("prod-root") == b"s.root-token"
        assert result.unseal_keys == [f"prod-unseal-{i}" for i in range(5)]
        assert result.root_token_key == "prod-root"
        assert result.root_token is None

    @pytest.mark.asyncio
    async def test_init_then_unseal(self, key_store, vault_client, options):
        """Shares written by init unseal the vault with threshold reads."""
        unsealer = Unsealer(key_store, vault_client, options)
        await unsealer.init()
        key_store.reads.clear()

        await unsealer.unseal()

        assert vault_client.is_sealed is False
        assert key_store.reads == ["prod-unseal-0", "prod-unseal-1", "prod-unseal-2"]
        assert len(vault_client.unseal_calls) == 3

    @pytest.mark.asyncio
    async def test_existing_root_blocks_init(self, vault_client, options):
        """A stored root token aborts before the vault is asked to init."""
        key_store = RecordingKeyStore({"prod-root": b"old-token"})
        unsealer = Unsealer(key_store, vault_client, options)

        with pytest.raises(PreexistingKeyError) as exc_info:
            await unsealer.init()

        assert exc_info.value.key == "prod-root"
        assert vault_client.init_calls == []
        assert await key_store.get("prod-root") == b"old-token"

    @pytest.mark.asyncio
    async def test_existing_share_blocks_init(self, vault_client, options):
        """A stored share inside the written range aborts init."""
        key_store = RecordingKeyStore({"prod-unseal-4": b"old"})
        unsealer = Unsealer(key_store, vault_client, options)

        with pytest.raises(PreexistingKeyError) as exc_info:
            await unsealer.init()

        assert exc_info.value.key == "prod-unseal-4"
        assert vault_client.init_calls == []

    @pytest.mark.asyncio
    async def test_share_past_written_range_is_ignored(self, vault_client, options):
        """Only indices 0..shares-1 are checked before init."""
        key_store = RecordingKeyStore({"prod-unseal-5": b"stale"})
        unsealer = Unsealer(key_store, vault_client, options)

        await unsealer.init()

        assert vault_client.init_calls == [(5, 3)]
        assert "prod-unseal-5" not in key_store.writes

    @pytest.mark.asyncio
    async def test_lookup_error_blocks_init(self, key_store, vault_client, options):
        """A lookup error other than not-found counts as a preexisting key."""
        key_store.fail_get.add("prod-unseal-2")
        unsealer = Unsealer(key_store, vault_client, options)

        with pytest.raises(PreexistingKeyError):
            await unsealer.init()

        assert vault_client.init_calls == []

    @pytest.mark.asyncio
    async def test_overwrite_existing_replaces_keys(self, vault_client):
        """With overwrite_existing, stored keys are replaced."""
        key_store = RecordingKeyStore({
            "prod-root": b"old-token", "prod-unseal-0": b"old",
        })
        options = VaultOptions(
            key_prefix="prod", secret_shares=3, secret_threshold=2,
            overwrite_existing=True,
        )
        unsealer = Unsealer(key_store, vault_client, options)

        await unsealer.init()

        assert await key_store.get("prod-unseal-0") == b"share-00"
        assert await key_store.get("prod-root") == b"s.root-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overwrite", [False, True])
    async def test_root_token_not_stored(self, key_store, vault_client, caplog, overwrite):
        """store_root_token=False never writes the root key and surfaces the token."""
        options = VaultOptions(
            key_prefix="prod", secret_shares=5, secret_threshold=3,
            store_root_token=False, overwrite_existing=overwrite,
        )
        unsealer = Unsealer(key_store, vault_client, options)

        with caplog.at_level(logging.WARNING, logger="unsealer.vault"):
            result = await unsealer.init()

        assert "prod-root" not in key_store.writes
        assert result.root_token == "s.root-token"
        assert result.root_token_key is None
        assert "s.root-token" in caplog.text

    @pytest.mark.asyncio
    async def test_precheck_failure(self, key_store, vault_client, options):
        """A failing keystore access check aborts before anything else."""
        key_store.fail_set.add("prod-test")
        unsealer = Unsealer(key_store, vault_client, options)

        with pytest.raises(InitPrecheckError):
            await unsealer.init()

        assert vault_client.init_calls == []
        assert key_store.writes == []

    @pytest.mark.asyncio
    async def test_vault_init_failure(self, key_store, options):
        """A vault that is already initialized raises VaultInitError."""
        client = FakeVaultClient(shares=["share-00"])
        unsealer = Unsealer(key_store, client, options)

        with pytest.raises(VaultInitError) as exc_info:
            await unsealer.init()

        assert isinstance(exc_info.value.__cause__, VaultAPIError)
        assert key_store.writes == ["prod-test"]

    @pytest.mark.asyncio
    async def test_partial_share_persist_is_reported(
        self, key_store, vault_client, options,
    ):
        """Shares written before a failure stay written and are reported."""
        key_store.fail_set.add("prod-unseal-2")
        unsealer = Unsealer(key_store, vault_client, options)

        with pytest.raises(KeyPersistError) as exc_info:
            await unsealer.init()

        assert exc_info.value.key == "prod-unseal-2"
        assert exc_info.value.written == ["prod-unseal-0", "prod-unseal-1"]
        assert await key_store.get("prod-unseal-1") == b"share-01"
        assert "prod-root" not in key_store.writes

    @pytest.mark.asyncio
    async def test_root_persist_failure_keeps_token(
        self, key_store, vault_client, options,
    ):
        """RootPersistError carries the token; shares stay written."""
        key_store.fail_set.add("prod-root")
        unsealer = Unsealer(key_store, vault_client, options)

        with pytest.raises(RootPersistError) as exc_info:
            await unsealer.init()

        assert exc_info.value.root_token == "s.root-token"
        assert await key_store.get("prod-unseal-4") == b"share-04"


# --- Test check_read_write_access() ---

class TestCheckReadWriteAccess:
    """Tests for the standalone keystore access check."""

    @pytest.mark.asyncio
    async def test_access_ok(self, key_store, vault_client, options):
        """A working keystore passes and only touches the access-check key."""
        unsealer = Unsealer(key_store, vault_client, options)
        await unsealer.check_read_write_access()
        assert key_store.writes == [ACCESS_CHECK_KEY]

    @pytest.mark.asyncio
    async def test_access_failure(self, key_store, vault_client, options):
        """A failing access check raises AccessCheckError."""
        key_store.fail_set.add(ACCESS_CHECK_KEY)
        unsealer = Unsealer(key_store, vault_client, options)
        with pytest.raises(AccessCheckError):
            await unsealer.check_read_write_access()
