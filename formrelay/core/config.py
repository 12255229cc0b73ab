from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAIL_TRANSPORTS = ("smtp", "sendmail")


class Settings(BaseSettings):
    PROJECT_NAME: str = "FormRelay"
    VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"

    # --- Environment & Debug ---
    ENVIRONMENT: str = "local"
    DEBUG: bool = False  # Enables the validation echo endpoint
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"  # Empty string disables the file handler

    # --- CORS ---
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:8080", "http://localhost:3000"],
        description="Origins allowed to post the HTML forms.",
    )

    # --- Mail addressing ---
    RECIPIENT_EMAIL: str = "recipient@example.com"
    RECIPIENT_NAME: str = "Contact Form Handler"
    SENDER_EMAIL: str = "noreply@example.com"
    SENDER_NAME: str = "Driver License Registration System"
    REGISTRATION_SUBJECT: str = "New Driver License Registration"
    CONTACT_SUBJECT: str = "New Contact Form Submission"

    # --- Uploads ---
    MAX_FILE_SIZE: int = 5 * 1024 * 1024  # 5MB
    ALLOWED_FILE_TYPES: List[str] = [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
    ]
    UPLOAD_DIR: str = "temp_uploads"
    UPLOAD_DIR_MODE: int = 0o755

    # --- Mail transport ---
    MAIL_TRANSPORT: str = "smtp"
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_STARTTLS: bool = True
    SENDMAIL_PATH: str = "/usr/sbin/sendmail"
    MAIL_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore", frozen=True
    )

    @field_validator("MAIL_TRANSPORT", mode="after")
    @classmethod
    def validate_mail_transport(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in MAIL_TRANSPORTS:
            raise ValueError(
                f"MAIL_TRANSPORT must be one of {', '.join(MAIL_TRANSPORTS)}"
            )
        return v

    @field_validator("MAX_FILE_SIZE", "MAIL_TIMEOUT_SECONDS", mode="after")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Process-wide settings, loaded once.

    Route handlers receive it through ``Depends(get_settings)`` so tests can
    substitute a different instance with ``app.dependency_overrides``.
    """
    return Settings()


settings = get_settings()
