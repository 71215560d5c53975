"""
VaultClient — capability over the vault server's seal/init control API.

``HTTPVaultClient`` talks to the three ``sys/`` endpoints the unsealer
needs through an ``aiohttp.ClientSession``:
- ``GET /v1/sys/seal-status``
- ``PUT /v1/sys/unseal`` with ``{"key": share}``
- ``PUT /v1/sys/init`` with ``{"secret_shares": n, "secret_threshold": t}``

Security Note:
    Request and response bodies carry unseal shares and the root token.
    Never log them.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp
import orjson

from ..exceptions import VaultAPIError
from .models import InitResponse, SealStatus

logger = logging.getLogger("unsealer.vault")


class VaultClient(ABC):
    """Control operations the unsealer performs against a vault server."""

    @abstractmethod
    async def seal_status(self) -> SealStatus:
        """Return the current seal status."""

    @abstractmethod
    async def unseal(self, share: str) -> SealStatus:
        """Submit one unseal share and return the resulting status."""

    @abstractmethod
    async def init(self, shares: int, threshold: int) -> InitResponse:
        """Initialize the vault, splitting the master key into ``shares``."""

    async def close(self) -> None:
        """Release transport resources."""


class HTTPVaultClient(VaultClient):
    """VaultClient over the vault HTTP API.

    Use as an async context manager, or call ``close()`` when done, so the
    underlying session is released.
    """

    def __init__(
        self,
        address: str = "http://127.0.0.1:8200",
        session: aiohttp.ClientSession | None = None,
        timeout: float = 10.0,
        verify_ssl: bool = True,
        namespace: str | None = None,
    ):
        self._address = address.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._verify_ssl = verify_ssl
        self._namespace = namespace

    async def __aenter__(self) -> "HTTPVaultClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = None
            if not self._verify_ssl:
                connector = aiohttp.TCPConnector(ssl=False)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout, connector=connector,
            )
        return self._session

    async def _request(
        self, method: str, path: str, payload: dict | None = None,
    ) -> dict:
        """Send a request and return the decoded JSON body.

        Raises:
            VaultAPIError: If the vault answers with a non-2xx status or an
                unparseable body.
            aiohttp.ClientError: On transport failures.
        """
        url = f"{self._address}/v1/{path}"
        headers = {"Content-Type": "application/json"}
        if self._namespace:
            headers["X-Vault-Namespace"] = self._namespace
        data = orjson.dumps(payload) if payload is not None else None
        session = self._get_session()
        async with session.request(
            method, url, data=data, headers=headers,
        ) as response:
            body = await response.read()
            status = response.status
        try:
            decoded = orjson.loads(body) if body else {}
        except orjson.JSONDecodeError:
            decoded = None
        if not 200 <= status < 300:
            if isinstance(decoded, dict):
                errors = [str(e) for e in decoded.get("errors", [])]
            else:
                errors = [body.decode("utf-8", errors="replace")]
            raise VaultAPIError(status, errors)
        if not isinstance(decoded, dict):
            raise VaultAPIError(status, [f"unexpected response body from {path}"])
        logger.debug("%s %s -> %d", method, path, status)
        return decoded

    async def seal_status(self) -> SealStatus:
        data = await self._request("GET", "sys/seal-status")
        return SealStatus.model_validate(data)

    async def unseal(self, share: str) -> SealStatus:
        data = await self._request("PUT", "sys/unseal", {"key": share})
        return SealStatus.model_validate(data)

    async def init(self, shares: int, threshold: int) -> InitResponse:
        data = await self._request(
            "PUT",
            "sys/init",
            {"secret_shares": shares, "secret_threshold": threshold},
        )
        return InitResponse.model_validate(data)
