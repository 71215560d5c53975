"""Response and result models exchanged with the vault."""
from pydantic import BaseModel, ConfigDict, Field


class SealStatus(BaseModel):
    """Seal state as reported by ``sys/seal-status`` and ``sys/unseal``.

    ``progress`` counts shares accepted toward the threshold in the current
    attempt; the vault resets it to 0 when a submitted share is rejected.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sealed: bool
    progress: int = 0
    threshold: int = Field(default=0, alias="t")
    shares: int = Field(default=0, alias="n")
    initialized: bool = True
    version: str | None = None


class InitResponse(BaseModel):
    """Body returned by ``sys/init``."""

    model_config = ConfigDict(extra="ignore")

    keys: list[str]
    keys_base64: list[str] = Field(default_factory=list)
    root_token: str


class InitResult(BaseModel):
    """What ``Unsealer.init`` persisted.

    ``root_token`` is only set when the token was not written to the
    keystore; it is the caller's single chance to capture it.
    """

    unseal_keys: list[str]
    root_token_key: str | None = None
    root_token: str | None = Field(default=None, repr=False)
