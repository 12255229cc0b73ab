"""
Submission validation.

Sanitizes every text field of a variant, then runs all field and upload
checks without stopping at the first failure so the browser receives every
problem in one response.

Image types are decided by sniffing the uploaded bytes with Pillow; the
content type declared by the client is never trusted.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import BinaryIO, Dict, Iterable, List, Mapping, Optional

from PIL import Image

from formrelay.core.sanitizer import sanitize_input
from formrelay.services.form_schema import FormVariant, SlotRule

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"

# Pillow reports multi-picture JPEGs (most phone cameras) as MPO
_FORMAT_MIME_OVERRIDES = {"MPO": "image/jpeg"}

_TYPE_NAMES = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WebP",
}


class UploadStatus(str, enum.Enum):
    OK = "ok"
    NO_FILE = "no_file"
    EMPTY = "empty"
    MULTIPLE = "multiple"


@dataclass
class UploadedFile:
    """A file received for one attachment slot, still in transient storage."""

    slot: str
    filename: str
    content_type: Optional[str]  # declared by the client, display only
    file: Optional[BinaryIO]
    size: int
    status: UploadStatus = UploadStatus.OK


@dataclass
class ValidationResult:
    fields: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    content_types: Dict[str, str] = field(default_factory=dict)

    def add(self, message: str) -> None:
        self.errors.append(message)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def message(self) -> str:
        return ", ".join(self.errors)


def parse_strict_date(value: str) -> Optional[date]:
    """Parse ``YYYY-MM-DD``, rejecting anything that does not round-trip."""
    try:
        parsed = datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return None
    if parsed.strftime(DATE_FORMAT) != value:
        return None
    return parsed.date()


def sniff_content_type(fileobj: BinaryIO) -> Optional[str]:
    """Return the MIME type of an image by inspecting its bytes.

    The stream position is restored. Returns None for anything Pillow cannot
    identify.
    """
    position = fileobj.tell()
    try:
        fileobj.seek(0)
        with Image.open(fileobj) as image:
            image_format = image.format
    except (OSError, Image.DecompressionBombError) as exc:
        logger.debug("Content sniffing failed: %s", exc)
        return None
    finally:
        fileobj.seek(position)

    if not image_format:
        return None
    return _FORMAT_MIME_OVERRIDES.get(image_format) or Image.MIME.get(image_format)


def format_size_limit(num_bytes: int) -> str:
    if num_bytes >= 1024 * 1024:
        return f"{num_bytes / (1024 * 1024):g}MB"
    if num_bytes >= 1024:
        return f"{num_bytes / 1024:g}KB"
    return f"{num_bytes} bytes"


def describe_types(content_types: Iterable[str]) -> str:
    names: List[str] = []
    for content_type in content_types:
        name = _TYPE_NAMES.get(content_type, content_type.split("/")[-1].upper())
        if name not in names:
            names.append(name)
    if len(names) <= 1:
        return "".join(names)
    return f"{', '.join(names[:-1])} or {names[-1]}"


class FormValidator:
    def __init__(self, max_file_size: int, allowed_types: Iterable[str]):
        self.max_file_size = max_file_size
        self.allowed_types = tuple(allowed_types)
        self._size_label = format_size_limit(max_file_size)
        self._types_label = describe_types(self.allowed_types)

    def validate(
        self,
        variant: FormVariant,
        raw_fields: Mapping[str, Optional[str]],
        uploads: Mapping[str, UploadedFile],
    ) -> ValidationResult:
        result = ValidationResult(
            fields={
                rule.name: sanitize_input(raw_fields.get(rule.name))
                for rule in variant.fields
            }
        )

        parsed_dates: Dict[str, date] = {}
        for rule in variant.fields:
            value = result.fields[rule.name]
            if not value:
                result.add(rule.required_message)
            elif rule.is_date:
                parsed = parse_strict_date(value)
                if parsed is None:
                    result.add(rule.invalid_message)
                else:
                    parsed_dates[rule.name] = parsed
            elif rule.choices is not None and value not in rule.choices:
                result.add(rule.invalid_message)

            order = variant.date_order
            if order is not None and rule.name == order.end_field:
                start = parsed_dates.get(order.start_field)
                end = parsed_dates.get(order.end_field)
                if start is not None and end is not None and end <= start:
                    result.add(order.message)

        for slot in variant.slots:
            self._validate_upload(slot, uploads.get(slot.name), result)

        return result

    def _validate_upload(
        self,
        slot: SlotRule,
        upload: Optional[UploadedFile],
        result: ValidationResult,
    ) -> None:
        if upload is None or upload.status is UploadStatus.NO_FILE:
            result.add(f"{slot.label} upload is required")
            return
        if upload.status is UploadStatus.EMPTY:
            result.add(f"{slot.label} upload was empty or interrupted")
            return
        if upload.status is UploadStatus.MULTIPLE:
            result.add(f"{slot.label} upload must be a single file")
            return

        if upload.size > self.max_file_size:
            result.add(f"{slot.label} must not exceed {self._size_label}")

        content_type = sniff_content_type(upload.file)
        if content_type is None or content_type not in self.allowed_types:
            result.add(f"{slot.label} must be a {self._types_label} image")
            if content_type is not None and content_type != upload.content_type:
                logger.info(
                    "Rejected %s: declared %s, sniffed %s",
                    slot.name,
                    upload.content_type,
                    content_type,
                )
        else:
            result.content_types[slot.name] = content_type
