"""
Health check endpoints for FormRelay API.

Provides:
- /health - Liveness probe (service alive)
- /health/setup - Environment diagnostics for the form pipeline
"""
import os
import shutil
from typing import List

from fastapi import APIRouter, Depends
from PIL import features

from formrelay.core.config import Settings, get_settings
from formrelay.schemas.submission import SetupCheck, SetupReport
from formrelay.services.form_validator import format_size_limit
from formrelay.services.upload_storage import UploadStorage

router = APIRouter(tags=["health"])

# Pillow codec needed to identify each allowed type
_TYPE_CODECS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "zlib",
    "image/webp": "webp",
}


def check_upload_directory(settings: Settings) -> SetupCheck:
    storage = UploadStorage(settings.UPLOAD_DIR, settings.UPLOAD_DIR_MODE)
    existed = storage.upload_dir.exists()
    try:
        storage.ensure_directory()
    except OSError as e:
        return SetupCheck(
            name="upload_directory",
            status="fail",
            detail=f"Could not create upload directory {settings.UPLOAD_DIR}: {e.strerror}",
        )

    if not os.access(storage.upload_dir, os.W_OK):
        return SetupCheck(
            name="upload_directory",
            status="fail",
            detail=f"Upload directory {settings.UPLOAD_DIR} is not writable",
        )

    action = "exists" if existed else "created"
    return SetupCheck(
        name="upload_directory",
        status="pass",
        detail=f"Upload directory {settings.UPLOAD_DIR} {action} and is writable",
    )


def check_mail_transport(settings: Settings) -> SetupCheck:
    if settings.MAIL_TRANSPORT == "sendmail":
        found = os.access(settings.SENDMAIL_PATH, os.X_OK) or shutil.which(
            settings.SENDMAIL_PATH
        )
        if not found:
            return SetupCheck(
                name="mail_transport",
                status="fail",
                detail=f"sendmail binary not found at {settings.SENDMAIL_PATH}",
            )
        return SetupCheck(
            name="mail_transport",
            status="pass",
            detail=f"sendmail at {settings.SENDMAIL_PATH}",
        )

    if not settings.SMTP_HOST:
        return SetupCheck(
            name="mail_transport",
            status="fail",
            detail="SMTP_HOST is not configured",
        )
    detail = f"SMTP {settings.SMTP_HOST}:{settings.SMTP_PORT}"
    if not (settings.SMTP_USER and settings.SMTP_PASSWORD):
        return SetupCheck(
            name="mail_transport",
            status="warning",
            detail=f"{detail} without authentication",
        )
    return SetupCheck(name="mail_transport", status="pass", detail=detail)


def check_image_support(settings: Settings) -> List[SetupCheck]:
    checks = []
    for content_type in settings.ALLOWED_FILE_TYPES:
        codec = _TYPE_CODECS.get(content_type)
        if codec is None or features.check(codec):
            checks.append(
                SetupCheck(
                    name=f"sniffing:{content_type}",
                    status="pass",
                    detail=f"{content_type} can be identified",
                )
            )
        else:
            checks.append(
                SetupCheck(
                    name=f"sniffing:{content_type}",
                    status="warning",
                    detail=f"Pillow was built without {codec} support",
                )
            )
    return checks


@router.get("/health")
async def liveness(settings: Settings = Depends(get_settings)):
    """Liveness probe - always returns OK if service is running."""
    return {"status": "ok", "version": settings.VERSION}


@router.get("/health/setup", response_model=SetupReport)
async def setup_diagnostics(settings: Settings = Depends(get_settings)) -> SetupReport:
    """
    Verify the environment the form pipeline depends on.

    Checks the upload directory, the mail transport configuration and the
    image formats Pillow can identify.
    """
    checks = [
        check_upload_directory(settings),
        check_mail_transport(settings),
        *check_image_support(settings),
        SetupCheck(
            name="max_file_size",
            status="pass",
            detail=f"Attachments up to {format_size_limit(settings.MAX_FILE_SIZE)}",
        ),
    ]

    statuses = {check.status for check in checks}
    if "fail" in statuses:
        overall = "fail"
    elif "warning" in statuses:
        overall = "warning"
    else:
        overall = "pass"

    return SetupReport(status=overall, version=settings.VERSION, checks=checks)
