"""Filesystem blob store issuing HMAC-signed, expiring download URLs."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import re
import time
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlencode
from uuid import uuid4

from aftersales_engine.application.ports.blob_store_port import BlobMetadata, BlobStorePort

_SAFE_SUFFIX = re.compile(r"^\.[a-z0-9]{1,10}$")


class InvalidBlobKeyError(ValueError):
    """Raised when a storage key would escape the blob root."""


class LocalBlobStore(BlobStorePort):
    """Store blobs under a root directory; keys are relative POSIX paths."""

    def __init__(
        self,
        *,
        root: str | Path,
        signing_secret: str,
        public_base_url: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root)
        self._signing_secret = signing_secret.encode("utf-8")
        self._public_base_url = public_base_url.rstrip("/")
        self._clock = clock

    async def put(self, data: bytes, metadata: BlobMetadata) -> str:
        """Write bytes under `<prefix>/<random>.<ext>` and return the key."""

        suffix = PurePosixPath(metadata.filename).suffix.lower()
        if not _SAFE_SUFFIX.match(suffix):
            suffix = ""
        key = f"{metadata.prefix.strip('/')}/{uuid4().hex}{suffix}"
        path = self.path_for(key)
        await asyncio.to_thread(_write_bytes, path, data)
        return key

    async def signed_url(self, key: str, *, ttl_seconds: int) -> str:
        """Return download URL valid for `ttl_seconds`."""

        self.path_for(key)
        expires = int(self._clock()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._sign(key, expires)})
        return f"{self._public_base_url}/{quote(key)}?{query}"

    def verify_signature(self, key: str, *, expires: int, signature: str) -> bool:
        """Return whether the signature matches and has not expired."""

        if expires < int(self._clock()):
            return False
        return hmac.compare_digest(self._sign(key, expires), signature)

    def path_for(self, key: str) -> Path:
        """Resolve a key to its file path, rejecting keys outside the root."""

        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise InvalidBlobKeyError(f"invalid storage key: {key}")
        return self._root.joinpath(*relative.parts)

    def _sign(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode()
        return hmac.new(self._signing_secret, message, hashlib.sha256).hexdigest()


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
