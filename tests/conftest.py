import io
import os
from typing import List

# Keep test runs from writing log files before any formrelay import
os.environ.setdefault("LOG_DIR", "")

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from formrelay.api.v1.forms import get_mail_transport
from formrelay.core.config import Settings, get_settings
from formrelay.core.errors import TransportError
from formrelay.main import app

# -----------------------------------------------------------------------------
# Image payloads
# -----------------------------------------------------------------------------


def make_image_bytes(fmt: str = "JPEG", size=(16, 16), color=(200, 40, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, fmt)
    return buffer.getvalue()


@pytest.fixture
def make_image():
    return make_image_bytes


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG", color=(10, 120, 240))


# -----------------------------------------------------------------------------
# Settings and transport
# -----------------------------------------------------------------------------


class RecordingTransport:
    """Mail transport double that records messages or raises a given error."""

    def __init__(self):
        self.messages: List = []
        self.error = None

    def send(self, message) -> None:
        if self.error is not None:
            raise self.error
        self.messages.append(message)

    def reject(self, reason: str = "550 mailbox unavailable") -> None:
        self.error = TransportError(reason)


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "temp_uploads"


@pytest.fixture
def test_settings(upload_dir) -> Settings:
    return Settings(
        _env_file=None,
        UPLOAD_DIR=str(upload_dir),
        RECIPIENT_EMAIL="inbox@example.com",
        RECIPIENT_NAME="Registrations Desk",
        SENDER_EMAIL="noreply@example.com",
        SENDER_NAME="Driver License Registration System",
        SMTP_HOST="smtp.test",
        SMTP_USER="mailer",
        SMTP_PASSWORD="secret",
        LOG_DIR="",
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


# -----------------------------------------------------------------------------
# Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def app_overrides(test_settings, transport):
    """Inject test settings and the recording transport into the app."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_mail_transport] = lambda: transport
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_overrides):
    # Using 'with' context manager to trigger lifespan events (startup/shutdown)
    with TestClient(app_overrides) as c:
        yield c


@pytest.fixture
def registration_data() -> dict:
    return {
        "name": "Jane Doe",
        "start_date": "2024-01-01",
        "exp_date": "2025-01-01",
        "department": "IT",
        "project": "Project B",
    }


@pytest.fixture
def image_files(jpeg_bytes) -> dict:
    return {
        "image1": ("license-front.jpg", jpeg_bytes, "image/jpeg"),
        "image2": ("license-back.jpg", jpeg_bytes, "image/jpeg"),
    }
