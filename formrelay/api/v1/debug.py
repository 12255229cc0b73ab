"""
Validation echo endpoint for troubleshooting form integrations.

Runs collection and validation only: nothing is written to disk and no mail
is sent. Enabled only when DEBUG is true.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from formrelay.api.v1.forms import MAX_FORM_FIELDS, MAX_FORM_FILES, get_form_validator
from formrelay.core.feature_flags import require_debug_mode
from formrelay.schemas.submission import (
    DebugSubmissionResponse,
    SlotDebugInfo,
    SubmissionDebugInfo,
)
from formrelay.services.form_schema import get_variant
from formrelay.services.form_validator import FormValidator
from formrelay.services.submission_service import collect_submission

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/debug/{variant_key}",
    response_model=DebugSubmissionResponse,
    dependencies=[Depends(require_debug_mode)],
    summary="Dry-run validation of a form submission",
)
async def debug_submission(
    variant_key: str,
    request: Request,
    validator: FormValidator = Depends(get_form_validator),
) -> DebugSubmissionResponse:
    variant = get_variant(variant_key)
    if variant is None:
        raise HTTPException(status_code=404, detail="Unknown form")

    async with request.form(max_files=MAX_FORM_FILES, max_fields=MAX_FORM_FIELDS) as form:
        fields, uploads = collect_submission(variant, form)
        result = validator.validate(variant, fields, uploads)
        received = sorted({key for key in form.keys()})

    files_received = {}
    for slot in variant.slot_names:
        upload = uploads.get(slot)
        if upload is None:
            files_received[slot] = SlotDebugInfo(status="missing")
        else:
            files_received[slot] = SlotDebugInfo(
                filename=upload.filename or None,
                status=upload.status.value,
                size_bytes=upload.size,
            )

    logger.info(
        "Debug validation variant=%s errors=%s", variant.key, len(result.errors)
    )

    if result.ok:
        message = "Debug test successful! All validation passed."
    else:
        message = f"Validation failed: {result.message}"

    return DebugSubmissionResponse(
        success=result.ok,
        message=message,
        debug_info=SubmissionDebugInfo(
            variant=variant.key,
            fields_received=received,
            files_received=files_received,
            errors=result.errors,
        ),
    )
