"""
Form submission endpoints.

Both endpoints accept multipart form data and always answer with
``{"success": bool, "message": str}``. Handled outcomes (delivered,
validation failure, delivery failure) are HTTP 200.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from formrelay.core.config import Settings, get_settings
from formrelay.core.email import (
    DISPATCH_GRACE_SECONDS,
    MailDispatcher,
    MailTransport,
    build_transport,
)
from formrelay.schemas.submission import SubmissionResponse
from formrelay.services.form_schema import CONTACT, REGISTRATION, FormVariant
from formrelay.services.form_validator import FormValidator
from formrelay.services.message_composer import MessageComposer
from formrelay.services.submission_service import SubmissionService, collect_submission
from formrelay.services.upload_storage import UploadStorage

logger = logging.getLogger(__name__)

router = APIRouter()

# Bounds for multipart parsing; the forms carry 5 fields and 2 files
MAX_FORM_FILES = 10
MAX_FORM_FIELDS = 50


def get_mail_transport(settings: Settings = Depends(get_settings)) -> MailTransport:
    """Return the transport selected by MAIL_TRANSPORT."""
    return build_transport(settings)


def get_form_validator(settings: Settings = Depends(get_settings)) -> FormValidator:
    return FormValidator(settings.MAX_FILE_SIZE, settings.ALLOWED_FILE_TYPES)


def get_submission_service(
    settings: Settings = Depends(get_settings),
    validator: FormValidator = Depends(get_form_validator),
    transport: MailTransport = Depends(get_mail_transport),
) -> SubmissionService:
    return SubmissionService(
        validator=validator,
        storage=UploadStorage(settings.UPLOAD_DIR, settings.UPLOAD_DIR_MODE),
        composer=MessageComposer(settings),
        dispatcher=MailDispatcher(
            transport, settings.MAIL_TIMEOUT_SECONDS + DISPATCH_GRACE_SECONDS
        ),
    )


async def handle_submission(
    request: Request, variant: FormVariant, service: SubmissionService
) -> SubmissionResponse:
    # Uploaded files stay open until the pipeline is done with them
    async with request.form(max_files=MAX_FORM_FILES, max_fields=MAX_FORM_FIELDS) as form:
        fields, uploads = collect_submission(variant, form)
        return await service.submit(variant, fields, uploads)


@router.post(
    "/registration",
    response_model=SubmissionResponse,
    summary="Submit a driver license registration",
    description="Validates the registration fields and both license images, then emails them.",
)
async def submit_registration(
    request: Request,
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionResponse:
    return await handle_submission(request, REGISTRATION, service)


@router.post(
    "/contact",
    response_model=SubmissionResponse,
    summary="Submit the contact form",
    description="Validates department, project and two images, then emails them.",
)
async def submit_contact(
    request: Request,
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionResponse:
    return await handle_submission(request, CONTACT, service)
