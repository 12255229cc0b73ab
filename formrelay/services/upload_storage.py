"""
Durable storage for validated uploads.

Uploads arrive in transient storage owned by the HTTP layer. Before they can
be attached to the notification email they are copied into the configured
upload directory under a unique name, and removed again once the request is
done with them.
"""

import logging
import os
import re
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from formrelay.core.errors import UploadError
from formrelay.services.form_validator import UploadedFile

logger = logging.getLogger(__name__)

_MAX_EXTENSION_LENGTH = 10
_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Attachment:
    """A materialized upload ready to be attached to an email."""

    path: Path
    filename: str  # original client filename, shown to the recipient
    content_type: str  # sniffed type


def safe_extension(filename: str) -> str:
    """Return the lower-cased extension of ``filename`` or an empty string."""
    suffix = Path(filename or "").suffix.lower().lstrip(".")
    suffix = re.sub(r"[^a-z0-9]", "", suffix)[:_MAX_EXTENSION_LENGTH]
    return f".{suffix}" if suffix else ""


class UploadStorage:
    """Copies uploads into ``upload_dir`` and deletes them afterwards."""

    def __init__(self, upload_dir, dir_mode: int = 0o755):
        self.upload_dir = Path(upload_dir)
        self.dir_mode = dir_mode

    def ensure_directory(self) -> Path:
        if not self.upload_dir.exists():
            self.upload_dir.mkdir(mode=self.dir_mode, parents=True, exist_ok=True)
            logger.info("Created upload directory %s", self.upload_dir)
        return self.upload_dir

    def build_filename(self, index: int, original_name: str) -> str:
        return (
            f"attachment_{index}_{int(time.time())}_{uuid.uuid4().hex}"
            f"{safe_extension(original_name)}"
        )

    def materialize(
        self, upload: UploadedFile, index: int, content_type: str
    ) -> Attachment:
        """
        Copy a validated upload into the upload directory.

        Args:
            upload: The validated upload, still in transient storage
            index: 1-based slot position, part of the generated name
            content_type: Sniffed MIME type recorded on the attachment

        Returns:
            Attachment pointing at the durable copy

        Raises:
            UploadError: If the directory cannot be created or the copy fails
        """
        try:
            self.ensure_directory()
        except OSError as exc:
            raise UploadError(
                f"Cannot create upload directory {self.upload_dir}: {exc}"
            ) from exc

        destination = self.upload_dir / self.build_filename(index, upload.filename)
        try:
            upload.file.seek(0)
            with open(destination, "xb") as target:
                shutil.copyfileobj(upload.file, target, _CHUNK_SIZE)
        except OSError as exc:
            self._remove(destination)
            raise UploadError(f"Failed to store {upload.slot}: {exc}") from exc

        logger.info(
            "Stored %s (%s bytes) as %s", upload.slot, upload.size, destination.name
        )
        return Attachment(
            path=destination,
            filename=upload.filename,
            content_type=content_type,
        )

    def cleanup(self, paths: Iterable[Path]) -> None:
        """Delete materialized files. Missing files are ignored."""
        for path in paths:
            self._remove(Path(path))

    def _remove(self, path: Path) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.error("Could not remove temporary upload %s: %s", path, exc)
            return
        logger.debug("Removed temporary upload %s", path.name)
