"""
FormRelay Services Module.

Services:
    - FormValidator: field sanitation and upload checks
    - UploadStorage: durable copies of validated uploads and their cleanup
    - MessageComposer: HTML body and multipart/mixed email construction
    - SubmissionService: the end-to-end pipeline used by the form endpoints
"""

from .form_schema import CONTACT, REGISTRATION, FormVariant, get_variant
from .form_validator import (
    FormValidator,
    UploadedFile,
    UploadStatus,
    ValidationResult,
    sniff_content_type,
)
from .message_composer import ComposedMessage, MessageComposer
from .submission_service import SubmissionService, collect_submission
from .upload_storage import Attachment, UploadStorage

__all__ = [
    # Form schemas
    "FormVariant",
    "REGISTRATION",
    "CONTACT",
    "get_variant",
    # Validation
    "FormValidator",
    "UploadedFile",
    "UploadStatus",
    "ValidationResult",
    "sniff_content_type",
    # Storage
    "UploadStorage",
    "Attachment",
    # Composition
    "MessageComposer",
    "ComposedMessage",
    # Pipeline
    "SubmissionService",
    "collect_submission",
]
