"""
Unsealer — drives a vault from uninitialized/sealed to unsealed.

Public API:
- ``sealed()`` — report whether the vault is sealed
- ``unseal()`` — submit stored shares one by one until the vault unseals
- ``init()`` — initialize the vault and persist shares + root token
- ``check_read_write_access()`` — check keystore read/write access

Keystore layout (persisted contract, derived only from the key prefix):
    {prefix}-unseal-{i}   share i, 0-indexed
    {prefix}-root         root token
    {prefix}-test         access-check key used before init

Concurrency Note:
    The overwrite protection in ``init()`` reads and then writes; it is not
    atomic. Callers must serialize ``init()`` per key prefix when several
    unsealers can run against the same keystore.

Security Note:
    Never log shares. The root token is only logged when it is not stored,
    since that log record is then the only copy outside the caller.
"""
import logging

from ..exceptions import (
    AccessCheckError,
    InitPrecheckError,
    KeyPersistError,
    KeyRetrievalError,
    NotFoundError,
    PreexistingKeyError,
    ProgressResetError,
    RootPersistError,
    SharesExhaustedError,
    StatusCheckError,
    UnsealSubmitError,
    VaultInitError,
)
from ..kv.base import KeyStore
from .client import VaultClient
from .config import VaultOptions
from .models import InitResult

logger = logging.getLogger("unsealer.vault")


def unseal_key_name(prefix: str, index: int) -> str:
    return f"{prefix}-unseal-{index}"


def root_key_name(prefix: str) -> str:
    return f"{prefix}-root"


def check_key_name(prefix: str) -> str:
    return f"{prefix}-test"


class Unsealer:
    """Unseal/init orchestrator over a KeyStore and a VaultClient.

    Both collaborators are injected; the orchestrator holds no other state
    and performs no retries. Every operation is a coroutine, so a caller
    bounds it with ``asyncio.wait_for``.
    """

    def __init__(
        self,
        key_store: KeyStore,
        client: VaultClient,
        options: VaultOptions,
    ):
        self._key_store = key_store
        self._client = client
        self._options = options

    @property
    def options(self) -> VaultOptions:
        return self._options

    # ------------------------------------------------------------------
    # Key naming
    # ------------------------------------------------------------------

    def unseal_key_for_id(self, index: int) -> str:
        return unseal_key_name(self._options.key_prefix, index)

    def root_token_key(self) -> str:
        return root_key_name(self._options.key_prefix)

    def test_key(self) -> str:
        return check_key_name(self._options.key_prefix)

    # ------------------------------------------------------------------
    # Keystore helpers
    # ------------------------------------------------------------------

    async def _key_store_not_found(self, key: str) -> bool:
        """True only when the keystore positively reports ``key`` as absent."""
        try:
            await self._key_store.get(key)
        except NotFoundError:
            return True
        except Exception as err:
            logger.error(
                "Error checking whether key=%s exists: %s", key, err,
            )
        return False

    async def _key_store_set(self, key: str, value: bytes) -> None:
        """Write ``key`` honouring the overwrite policy."""
        if not self._options.overwrite_existing and not await self._key_store_not_found(key):
            raise PreexistingKeyError(
                f"error setting key '{key}': it already exists or could not "
                "be checked",
                key=key,
            )
        await self._key_store.set(key, value)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sealed(self) -> bool:
        """Return whether the vault is currently sealed.

        Raises:
            StatusCheckError: If the seal status cannot be read.
        """
        try:
            status = await self._client.seal_status()
        except Exception as err:
            raise StatusCheckError(f"error checking status: {err}") from err
        return status.sealed

    async def unseal(self) -> None:
        """Submit stored shares in index order until the vault unseals.

        There is no upper bound on the index. The loop ends when the vault
        reports unsealed, when a submission resets progress to 0, or when
        the keystore has no share at the next index (``SharesExhaustedError``,
        i.e. "no more shares available, give up").

        Raises:
            SharesExhaustedError: No share stored at the next index.
            KeyRetrievalError: Any other failure reading a share.
            UnsealSubmitError: The unseal request itself failed.
            ProgressResetError: The vault rejected a share.
        """
        index = 0
        while True:
            key = self.unseal_key_for_id(index)

            logger.debug("Retrieving unseal share key=%s", key)
            try:
                share = await self._key_store.get(key)
            except NotFoundError as err:
                raise SharesExhaustedError(
                    f"no unseal share stored at '{key}': keystore holds "
                    f"only {index} share(s) and the vault is still sealed",
                    key=key,
                ) from err
            except Exception as err:
                raise KeyRetrievalError(
                    f"unable to get key '{key}': {err}", key=key,
                ) from err

            logger.debug("Sending unseal request for share index=%d", index)
            try:
                status = await self._client.unseal(share.decode("utf-8"))
            except Exception as err:
                raise UnsealSubmitError(
                    f"failed to send unseal request for '{key}': {err}"
                ) from err

            logger.debug(
                "Unseal response: sealed=%s progress=%d threshold=%d",
                status.sealed, status.progress, status.threshold,
            )

            if not status.sealed:
                logger.info("Vault unsealed after %d share(s)", index + 1)
                return

            if status.progress == 0:
                raise ProgressResetError(
                    f"failed to unseal vault: progress reset to 0 after "
                    f"submitting '{key}'",
                    key=key,
                )

            index += 1

    async def init(self) -> InitResult:
        """Initialize the vault and persist its shares and root token.

        Returns:
            InitResult naming the keys written. ``root_token`` is set only
            when ``store_root_token`` is False.

        Raises:
            InitPrecheckError: The keystore access check failed.
            PreexistingKeyError: A target key already exists (or could not
                be checked) and ``overwrite_existing`` is False.
            VaultInitError: The vault refused to initialize.
            KeyPersistError: A share could not be written; earlier shares
                stay written (see ``written``).
            RootPersistError: The root token could not be written.
        """
        try:
            await self._key_store.test(self.test_key())
        except Exception as err:
            raise InitPrecheckError(
                f"error testing keystore before init: {err}"
            ) from err

        share_keys = [
            self.unseal_key_for_id(i) for i in range(self._options.secret_shares)
        ]

        if not self._options.overwrite_existing:
            # Only the share indices that will be written are checked.
            for key in [self.root_token_key(), *share_keys]:
                if not await self._key_store_not_found(key):
                    raise PreexistingKeyError(
                        f"error before init: keystore value for '{key}' "
                        "already exists or could not be checked",
                        key=key,
                    )

        try:
            response = await self._client.init(
                self._options.secret_shares, self._options.secret_threshold,
            )
        except Exception as err:
            raise VaultInitError(f"error initialising vault: {err}") from err

        logger.info(
            "Vault initialized with %d share(s), threshold %d",
            len(response.keys), self._options.secret_threshold,
        )

        written: list[str] = []
        for index, share in enumerate(response.keys):
            key = self.unseal_key_for_id(index)
            try:
                await self._key_store_set(key, share.encode("utf-8"))
            except Exception as err:
                raise KeyPersistError(
                    f"error storing unseal key '{key}' "
                    f"({len(written)} share(s) already stored): {err}",
                    key=key,
                    written=written,
                ) from err
            written.append(key)
            logger.debug("Stored unseal share key=%s", key)

        root_token = response.root_token
        if self._options.store_root_token:
            key = self.root_token_key()
            try:
                await self._key_store_set(key, root_token.encode("utf-8"))
            except Exception as err:
                raise RootPersistError(
                    f"error storing root token in key '{key}': {err}",
                    key=key,
                    root_token=root_token,
                ) from err
            logger.info("Root token stored in key store: key=%s", key)
            return InitResult(unseal_keys=written, root_token_key=key)

        logger.warning(
            "Root token not stored in key store; it grants full privileges "
            "to vault, keep it secret: root_token=%s",
            root_token,
        )
        return InitResult(unseal_keys=written, root_token=root_token)

    async def check_read_write_access(self) -> None:
        """Check read/write access to the keystore.

        Raises:
            AccessCheckError: If the access check fails.
        """
        logger.info("Testing the read/write access...")
        try:
            await self._key_store.check_write_access()
        except Exception as err:
            raise AccessCheckError(
                f"read/write access test failed: {err}"
            ) from err
        logger.info("Testing the read/write access is successful")
