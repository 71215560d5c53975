"""In-process keystore, used for tests and dry runs."""
from ..exceptions import NotFoundError
from .base import KeyStore


class MemoryKeyStore(KeyStore):
    """Dict-backed KeyStore. Contents are lost when the process exits."""

    def __init__(self, data: dict[str, bytes] | None = None):
        self._data: dict[str, bytes] = dict(data or {})

    async def get(self, key: str) -> bytes:
        try:
            return self._data[key]
        except KeyError:
            raise NotFoundError(key) from None

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return list(self._data.keys())
