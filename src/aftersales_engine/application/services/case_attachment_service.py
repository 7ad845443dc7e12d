"""Attachment upload for after-sales cases."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final
from uuid import UUID

from aftersales_engine.application.ports.audit_logger_port import (
    AuditLoggerPort,
    AuditRecordInput,
)
from aftersales_engine.application.ports.blob_store_port import BlobMetadata, BlobStorePort
from aftersales_engine.application.ports.case_repository_port import (
    AttachmentCreateInput,
    AttachmentRecord,
    CaseLogCreateInput,
    CaseRepositoryPort,
)
from aftersales_engine.application.services.best_effort_dispatcher import BestEffortDispatcher
from aftersales_engine.application.services.case_lifecycle_service import CASE_RESOURCE_TYPE
from aftersales_engine.domain.actor import CaseActor
from aftersales_engine.domain.case_types import CaseLogAction
from aftersales_engine.domain.errors import CaseNotFoundError, CaseValidationError

logger = logging.getLogger(__name__)

ATTACHMENT_KEY_PREFIX: Final[str] = "after-sales-attachments"
DEFAULT_MAX_FILES: Final[int] = 10
DEFAULT_MAX_BYTES: Final[int] = 10 * 1024 * 1024

ALLOWED_ATTACHMENT_MEDIA_TYPES: Final[frozenset[str]] = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/bmp",
        "application/pdf",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/csv",
        "video/mp4",
        "video/x-msvideo",
        "video/quicktime",
        "video/x-ms-wmv",
    }
)


@dataclass(frozen=True)
class AttachmentUpload:
    """One uploaded file as received from the caller."""

    filename: str
    media_type: str
    data: bytes


class CaseAttachmentService:
    """Store evidence files and link them to a case."""

    def __init__(
        self,
        *,
        cases: CaseRepositoryPort,
        blob_store: BlobStorePort,
        dispatcher: BestEffortDispatcher,
        audit_logger: AuditLoggerPort,
        max_files: int = DEFAULT_MAX_FILES,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._cases = cases
        self._blob_store = blob_store
        self._dispatcher = dispatcher
        self._audit_logger = audit_logger
        self._max_files = max_files
        self._max_bytes = max_bytes

    async def upload_attachments(
        self,
        case_id: UUID,
        *,
        files: Sequence[AttachmentUpload],
        actor: CaseActor,
    ) -> list[AttachmentRecord]:
        """Validate every file first, then store blobs and persist metadata with one log entry."""

        self._validate_files(files)
        case = await self._cases.get_case(case_id=case_id)
        if case is None:
            raise CaseNotFoundError(case_id=case_id)

        filenames = [upload.filename for upload in files]
        inputs: list[AttachmentCreateInput] = []
        for upload in files:
            key = await self._blob_store.put(
                upload.data,
                BlobMetadata(
                    media_type=upload.media_type,
                    filename=upload.filename,
                    prefix=ATTACHMENT_KEY_PREFIX,
                ),
            )
            inputs.append(
                AttachmentCreateInput(
                    storage_key=key,
                    media_type=upload.media_type,
                    filename=upload.filename,
                )
            )

        records = await self._cases.add_attachments(
            case_id=case_id,
            attachments=inputs,
            log=CaseLogCreateInput(
                action=CaseLogAction.ATTACHMENT_UPLOADED,
                actor_id=actor.user_id,
                description=f"Uploaded {len(filenames)} attachment(s): {', '.join(filenames)}",
            ),
        )
        logger.info("case_attachments_uploaded case_id=%s count=%s", case_id, len(records))

        payload = AuditRecordInput(
            action="aftersales.upload_attachments",
            resource_type=CASE_RESOURCE_TYPE,
            resource_id=str(case_id),
            actor_id=actor.user_id,
            details={"filenames": filenames},
        )
        self._dispatcher.dispatch(
            "audit",
            lambda: self._audit_logger.record(payload),
            context={"case_id": case_id, "action": payload.action},
        )
        return records

    def _validate_files(self, files: Sequence[AttachmentUpload]) -> None:
        if not files:
            raise CaseValidationError(field="files", message="at least one file is required")
        if len(files) > self._max_files:
            raise CaseValidationError(
                field="files",
                message=f"at most {self._max_files} files may be uploaded at once",
            )
        for upload in files:
            if upload.media_type not in ALLOWED_ATTACHMENT_MEDIA_TYPES:
                raise CaseValidationError(
                    field="files",
                    message=f"unsupported media type {upload.media_type} for {upload.filename}",
                )
            if len(upload.data) > self._max_bytes:
                raise CaseValidationError(
                    field="files",
                    message=f"{upload.filename} exceeds {self._max_bytes} bytes",
                )

