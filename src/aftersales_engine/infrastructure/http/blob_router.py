"""FastAPI router serving signed attachment downloads."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from aftersales_engine.infrastructure.storage.local_blob_store import (
    InvalidBlobKeyError,
    LocalBlobStore,
)


def build_blob_router(*, blob_store: LocalBlobStore) -> APIRouter:
    """Build router exposing `GET /blobs/{key}` guarded by URL signatures."""

    router = APIRouter(tags=["blobs"])

    @router.get("/blobs/{key:path}")
    async def download_blob(key: str, expires: int, signature: str) -> FileResponse:
        if not blob_store.verify_signature(key, expires=expires, signature=signature):
            raise HTTPException(status_code=403, detail="invalid or expired signature")
        try:
            path = blob_store.path_for(key)
        except InvalidBlobKeyError as exc:
            raise HTTPException(status_code=404, detail="blob not found") from exc
        if not path.is_file():
            raise HTTPException(status_code=404, detail="blob not found")
        return FileResponse(path)

    return router
