"""
Per-variant form schemas.

The registration and contact forms run through the same pipeline; they only
differ in the text fields they require, the copy of the notification email and
the messages returned to the browser. Everything variant-specific lives in a
``FormVariant`` so the pipeline itself stays generic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

DEPARTMENTS = ("HR", "IT", "Finance", "Marketing")
PROJECTS = ("Project A", "Project B", "Project C", "Project D")


@dataclass(frozen=True)
class FieldRule:
    """A text field and the messages for each check it can fail."""

    name: str
    label: str
    required_message: str
    choices: Optional[Tuple[str, ...]] = None
    invalid_message: Optional[str] = None
    is_date: bool = False


@dataclass(frozen=True)
class SlotRule:
    """A fixed attachment position (``image1``, ``image2``)."""

    name: str
    label: str  # used in validation messages, e.g. "First image"
    body_label: str  # used in the email body, e.g. "Front Side"


@dataclass(frozen=True)
class DateOrderRule:
    start_field: str
    end_field: str
    message: str


@dataclass(frozen=True)
class FormVariant:
    key: str
    heading: str
    subject_setting: str
    fields: Tuple[FieldRule, ...]
    slots: Tuple[SlotRule, ...]
    attachments_label: str
    success_message: str
    failure_message: str
    date_order: Optional[DateOrderRule] = None

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(rule.name for rule in self.fields)

    @property
    def slot_names(self) -> Tuple[str, ...]:
        return tuple(slot.name for slot in self.slots)


_DEPARTMENT = FieldRule(
    name="department",
    label="Department",
    required_message="Department selection is required",
    choices=DEPARTMENTS,
    invalid_message="Valid department selection is required",
)

_PROJECT = FieldRule(
    name="project",
    label="Project",
    required_message="Project selection is required",
    choices=PROJECTS,
    invalid_message="Valid project selection is required",
)


REGISTRATION = FormVariant(
    key="registration",
    heading="New Driver License Registration",
    subject_setting="REGISTRATION_SUBJECT",
    fields=(
        FieldRule(
            name="name",
            label="Full Name",
            required_message="Full name is required",
        ),
        FieldRule(
            name="start_date",
            label="License Issue Date",
            required_message="License issue date is required",
            invalid_message="Invalid license issue date format",
            is_date=True,
        ),
        FieldRule(
            name="exp_date",
            label="License Expiry Date",
            required_message="License expiry date is required",
            invalid_message="Invalid license expiry date format",
            is_date=True,
        ),
        _DEPARTMENT,
        _PROJECT,
    ),
    slots=(
        SlotRule(name="image1", label="First image", body_label="Front Side"),
        SlotRule(name="image2", label="Second image", body_label="Back Side"),
    ),
    attachments_label="License Images",
    success_message="Your driver license registration has been submitted successfully!",
    failure_message=(
        "Failed to submit registration. Please try again later or contact us directly."
    ),
    date_order=DateOrderRule(
        start_field="start_date",
        end_field="exp_date",
        message="License expiry date must be after issue date",
    ),
)

CONTACT = FormVariant(
    key="contact",
    heading="New Contact Form Submission",
    subject_setting="CONTACT_SUBJECT",
    fields=(_DEPARTMENT, _PROJECT),
    slots=(
        SlotRule(name="image1", label="First image", body_label="Image 1"),
        SlotRule(name="image2", label="Second image", body_label="Image 2"),
    ),
    attachments_label="Attachments",
    success_message="Your message has been sent successfully!",
    failure_message="Failed to send message. Please try again later or contact us directly.",
)

VARIANTS = {variant.key: variant for variant in (REGISTRATION, CONTACT)}


def get_variant(key: str) -> Optional[FormVariant]:
    return VARIANTS.get(key)
