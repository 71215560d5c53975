"""Command line interface for vault-unsealer."""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import click
from pydantic import BaseModel, Field, ValidationError

from .version import __version__
from .exceptions import UnsealerError
from .kv import EncryptedKeyStore, FileKeyStore, KeyStore, RedisKeyStore
from .vault import (
    EncryptionSettings,
    HTTPVaultClient,
    Unsealer,
    VaultClient,
    VaultOptions,
)

logger = logging.getLogger("unsealer.cli")


class Settings(BaseModel):
    """Effective settings for one CLI invocation."""

    vault_addr: str = "http://127.0.0.1:8200"
    vault_namespace: str | None = None
    verify_ssl: bool = True
    mode: str = "file"
    file_dir: str = "/var/lib/vault-unsealer"
    redis_url: str = "redis://localhost:6379/0"
    redis_namespace: str = "vault-unsealer"
    encrypt: bool = False
    cipher: str = "aesgcm"
    timeout: float = Field(default=30.0, gt=0)
    options: VaultOptions = Field(default_factory=VaultOptions)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_key_store(settings: Settings) -> KeyStore:
    """Instantiate the keystore backend selected by ``settings.mode``."""
    encryption = None
    if settings.encrypt:
        try:
            encryption = EncryptionSettings.from_env(cipher=settings.cipher)
        except ValueError as err:
            raise click.UsageError(f"cannot enable encryption: {err}") from err
    store: KeyStore
    if settings.mode == "file":
        store = FileKeyStore(settings.file_dir)
    elif settings.mode == "redis":
        store = RedisKeyStore.from_url(
            settings.redis_url, namespace=settings.redis_namespace,
        )
    else:
        raise click.BadParameter(f"unknown keystore mode '{settings.mode}'")
    if encryption is not None:
        store = EncryptedKeyStore(
            store,
            master_keys=encryption.master_keys,
            active_key_id=encryption.active_key_id,
            cipher=encryption.cipher,
        )
    return store


def build_vault_client(settings: Settings) -> VaultClient:
    return HTTPVaultClient(
        settings.vault_addr,
        timeout=settings.timeout,
        verify_ssl=settings.verify_ssl,
        namespace=settings.vault_namespace,
    )


async def with_unsealer(
    settings: Settings, operation: Callable[[Unsealer], Awaitable[Any]],
) -> Any:
    """Build the collaborators, run ``operation`` and release them."""
    key_store = build_key_store(settings)
    client = build_vault_client(settings)
    try:
        unsealer = Unsealer(key_store, client, settings.options)
        return await operation(unsealer)
    finally:
        await client.close()
        await key_store.close()


async def run_loop(
    unsealer: Unsealer,
    interval: float,
    timeout: float,
    once: bool = False,
) -> None:
    """Poll the seal status and unseal whenever the vault is sealed.

    Errors are logged and the loop carries on; each call is bounded by
    ``timeout`` seconds.
    """
    while True:
        try:
            sealed = await asyncio.wait_for(unsealer.sealed(), timeout)
        except (UnsealerError, asyncio.TimeoutError) as err:
            logger.error("Error checking if vault is sealed: %s", err)
        else:
            if sealed:
                logger.info("Vault is sealed, unsealing...")
                try:
                    await asyncio.wait_for(unsealer.unseal(), timeout)
                except (UnsealerError, asyncio.TimeoutError) as err:
                    logger.error("Error unsealing vault: %s", err)
            else:
                logger.debug("Vault is already unsealed")
        if once:
            return
        await asyncio.sleep(interval)


def _execute(ctx: click.Context, operation: Callable[[Unsealer], Awaitable[Any]]) -> Any:
    settings: Settings = ctx.obj
    try:
        return asyncio.run(with_unsealer(settings, operation))
    except (UnsealerError, asyncio.TimeoutError) as err:
        click.echo(f"Error: {str(err) or 'operation timed out'}", err=True)
        ctx.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--vault-addr", envvar="VAULT_ADDR", default="http://127.0.0.1:8200",
              show_default=True, help="Address of the vault server.")
@click.option("--vault-namespace", envvar="VAULT_NAMESPACE", default=None,
              help="Vault enterprise namespace.")
@click.option("--insecure-skip-verify", is_flag=True, default=False,
              help="Do not verify the vault TLS certificate.")
@click.option("--mode", envvar="VAULT_UNSEALER_MODE",
              type=click.Choice(["file", "redis"]), default="file",
              show_default=True, help="Keystore backend.")
@click.option("--file-dir", envvar="VAULT_UNSEALER_FILE_DIR",
              default="/var/lib/vault-unsealer", show_default=True,
              help="Directory used by the file keystore.")
@click.option("--redis-url", envvar="VAULT_UNSEALER_REDIS_URL",
              default="redis://localhost:6379/0", show_default=True,
              help="URL used by the redis keystore.")
@click.option("--redis-namespace", envvar="VAULT_UNSEALER_REDIS_NAMESPACE",
              default="vault-unsealer", show_default=True,
              help="Prefix for redis keys.")
@click.option("--encrypt/--no-encrypt", envvar="VAULT_UNSEALER_ENCRYPT",
              default=False, show_default=True,
              help="Encrypt stored values with VAULT_UNSEALER_MASTER_KEY_v{N}.")
@click.option("--cipher", envvar="VAULT_UNSEALER_CIPHER",
              type=click.Choice(["aesgcm", "chacha20"]), default="aesgcm",
              show_default=True, help="AEAD used by --encrypt.")
@click.option("--key-prefix", envvar="VAULT_UNSEALER_KEY_PREFIX",
              default="vault", show_default=True,
              help="Prefix for every keystore key.")
@click.option("--secret-shares", envvar="VAULT_UNSEALER_SECRET_SHARES",
              type=int, default=5, show_default=True,
              help="Number of shares generated by init.")
@click.option("--secret-threshold", envvar="VAULT_UNSEALER_SECRET_THRESHOLD",
              type=int, default=3, show_default=True,
              help="Shares required to unseal.")
@click.option("--overwrite-existing/--no-overwrite-existing",
              envvar="VAULT_UNSEALER_OVERWRITE_EXISTING", default=False,
              show_default=True, help="Allow init to replace stored keys.")
@click.option("--store-root-token/--no-store-root-token",
              envvar="VAULT_UNSEALER_STORE_ROOT_TOKEN", default=True,
              show_default=True, help="Persist the root token in the keystore.")
@click.option("--timeout", envvar="VAULT_UNSEALER_TIMEOUT", type=float,
              default=30.0, show_default=True,
              help="Seconds allowed per operation.")
@click.option("--log-level", envvar="VAULT_UNSEALER_LOG_LEVEL",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"],
                                case_sensitive=False),
              default="INFO", show_default=True)
@click.pass_context
def cli(
    ctx: click.Context,
    vault_addr: str,
    vault_namespace: str | None,
    insecure_skip_verify: bool,
    mode: str,
    file_dir: str,
    redis_url: str,
    redis_namespace: str,
    encrypt: bool,
    cipher: str,
    key_prefix: str,
    secret_shares: int,
    secret_threshold: int,
    overwrite_existing: bool,
    store_root_token: bool,
    timeout: float,
    log_level: str,
) -> None:
    """Initialize and unseal a vault server using shares kept in a keystore."""
    setup_logging(log_level)
    try:
        options = VaultOptions(
            key_prefix=key_prefix,
            secret_shares=secret_shares,
            secret_threshold=secret_threshold,
            overwrite_existing=overwrite_existing,
            store_root_token=store_root_token,
        )
        ctx.obj = Settings(
            vault_addr=vault_addr,
            vault_namespace=vault_namespace,
            verify_ssl=not insecure_skip_verify,
            mode=mode,
            file_dir=file_dir,
            redis_url=redis_url,
            redis_namespace=redis_namespace,
            encrypt=encrypt,
            cipher=cipher,
            timeout=timeout,
            options=options,
        )
    except ValidationError as err:
        raise click.UsageError(str(err)) from err


@cli.command()
@click.option("--interval", envvar="VAULT_UNSEALER_INTERVAL", type=float,
              default=10.0, show_default=True,
              help="Seconds between seal status checks.")
@click.option("--once", is_flag=True, default=False,
              help="Check and unseal a single time, then exit.")
@click.pass_context
def run(ctx: click.Context, interval: float, once: bool) -> None:
    """Keep the vault unsealed, polling its seal status."""
    settings: Settings = ctx.obj
    _execute(
        ctx,
        lambda unsealer: run_loop(unsealer, interval, settings.timeout, once=once),
    )


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize the vault and store its keys in the keystore."""
    settings: Settings = ctx.obj

    async def _init(unsealer: Unsealer):
        return await asyncio.wait_for(unsealer.init(), settings.timeout)

    result = _execute(ctx, _init)
    for key in result.unseal_keys:
        click.echo(f"stored unseal key: {key}")
    if result.root_token_key:
        click.echo(f"stored root token: {result.root_token_key}")
    else:
        click.echo(f"root token (not stored): {result.root_token}")


@cli.command()
@click.pass_context
def unseal(ctx: click.Context) -> None:
    """Unseal the vault once with the stored shares."""
    settings: Settings = ctx.obj

    async def _unseal(unsealer: Unsealer):
        if not await asyncio.wait_for(unsealer.sealed(), settings.timeout):
            return False
        await asyncio.wait_for(unsealer.unseal(), settings.timeout)
        return True

    if _execute(ctx, _unseal):
        click.echo("vault unsealed")
    else:
        click.echo("vault is already unsealed")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Print whether the vault is sealed."""
    settings: Settings = ctx.obj

    async def _sealed(unsealer: Unsealer):
        return await asyncio.wait_for(unsealer.sealed(), settings.timeout)

    click.echo("sealed" if _execute(ctx, _sealed) else "unsealed")


@cli.command("check-access")
@click.pass_context
def check_access(ctx: click.Context) -> None:
    """Check read/write access to the keystore."""
    settings: Settings = ctx.obj

    async def _check(unsealer: Unsealer):
        await asyncio.wait_for(
            unsealer.check_read_write_access(), settings.timeout,
        )

    _execute(ctx, _check)
    click.echo("keystore read/write access OK")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
