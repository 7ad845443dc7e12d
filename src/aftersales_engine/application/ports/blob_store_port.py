"""Port for opaque attachment blob storage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class BlobMetadata:
    """Metadata stored alongside a blob."""

    media_type: str
    filename: str
    prefix: str


class BlobStorePort(Protocol):
    """Blob store contract."""

    async def put(self, data: bytes, metadata: BlobMetadata) -> str:
        """Store bytes and return an opaque storage key."""

    async def signed_url(self, key: str, *, ttl_seconds: int) -> str:
        """Return a time-limited download URL for the key."""
