"""
Form submission pipeline shared by the registration and contact endpoints.

    collect -> validate -> materialize -> compose -> dispatch -> cleanup

Validation failures short-circuit before anything touches the disk. Once
uploads have been materialized, cleanup runs on every exit path, including
exceptions that escape to the application's error boundary.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from starlette.datastructures import FormData, UploadFile

from formrelay.core.email import MailDispatcher
from formrelay.core.errors import UploadError
from formrelay.schemas.submission import SubmissionResponse
from formrelay.services.form_schema import FormVariant
from formrelay.services.form_validator import (
    FormValidator,
    UploadedFile,
    UploadStatus,
    ValidationResult,
)
from formrelay.services.message_composer import MessageComposer
from formrelay.services.upload_storage import Attachment, UploadStorage

logger = logging.getLogger(__name__)

PROCESSING_ERROR_MESSAGE = (
    "An error occurred while processing your request. Please try again later."
)


def _measure(fileobj) -> int:
    position = fileobj.tell()
    fileobj.seek(0, os.SEEK_END)
    size = fileobj.tell()
    fileobj.seek(position)
    return size


def collect_upload(slot: str, values: List) -> Optional[UploadedFile]:
    """Describe what the request carried under one slot key.

    Returns None when the key is absent altogether.
    """
    if not values:
        return None

    files = [value for value in values if isinstance(value, UploadFile)]
    if len(files) > 1:
        first = files[0]
        return UploadedFile(
            slot=slot,
            filename=first.filename or "",
            content_type=first.content_type,
            file=None,
            size=0,
            status=UploadStatus.MULTIPLE,
        )
    if not files or not files[0].filename:
        return UploadedFile(
            slot=slot,
            filename="",
            content_type=None,
            file=None,
            size=0,
            status=UploadStatus.NO_FILE,
        )

    upload = files[0]
    size = _measure(upload.file)
    return UploadedFile(
        slot=slot,
        filename=upload.filename,
        content_type=upload.content_type,
        file=upload.file,
        size=size,
        status=UploadStatus.OK if size > 0 else UploadStatus.EMPTY,
    )


def collect_submission(
    variant: FormVariant, form: FormData
) -> Tuple[Dict[str, Optional[str]], Dict[str, UploadedFile]]:
    """Read the variant's text fields and file slots out of parsed form data."""
    fields: Dict[str, Optional[str]] = {}
    for name in variant.field_names:
        value = form.get(name)
        fields[name] = value if isinstance(value, str) else None

    uploads: Dict[str, UploadedFile] = {}
    for slot in variant.slot_names:
        upload = collect_upload(slot, form.getlist(slot))
        if upload is not None:
            uploads[slot] = upload

    return fields, uploads


class SubmissionService:
    """Runs one submission through the pipeline and builds the response."""

    def __init__(
        self,
        validator: FormValidator,
        storage: UploadStorage,
        composer: MessageComposer,
        dispatcher: MailDispatcher,
    ):
        self.validator = validator
        self.storage = storage
        self.composer = composer
        self.dispatcher = dispatcher

    def validate(
        self,
        variant: FormVariant,
        fields: Mapping[str, Optional[str]],
        uploads: Mapping[str, UploadedFile],
    ) -> ValidationResult:
        return self.validator.validate(variant, fields, uploads)

    async def submit(
        self,
        variant: FormVariant,
        fields: Mapping[str, Optional[str]],
        uploads: Mapping[str, UploadedFile],
    ) -> SubmissionResponse:
        result = self.validate(variant, fields, uploads)
        if not result.ok:
            logger.info(
                "Submission rejected variant=%s errors=%s",
                variant.key,
                len(result.errors),
            )
            return SubmissionResponse(success=False, message=result.message)

        created: List[Path] = []
        try:
            attachments: List[Attachment] = []
            for index, slot in enumerate(variant.slots, start=1):
                attachment = await asyncio.to_thread(
                    self.storage.materialize,
                    uploads[slot.name],
                    index,
                    result.content_types[slot.name],
                )
                created.append(attachment.path)
                attachments.append(attachment)

            composed = self.composer.compose(variant, result.fields, attachments)
            accepted = await self.dispatcher.dispatch(composed.mime)
        except UploadError as exc:
            logger.error(
                "Upload materialization failed variant=%s: %s", variant.key, exc
            )
            return SubmissionResponse(success=False, message=PROCESSING_ERROR_MESSAGE)
        finally:
            self.storage.cleanup(created)

        if not accepted:
            return SubmissionResponse(success=False, message=variant.failure_message)

        logger.info(
            "Submission delivered variant=%s attachments=%s",
            variant.key,
            len(attachments),
        )
        return SubmissionResponse(success=True, message=variant.success_message)
