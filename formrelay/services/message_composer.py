"""
Notification email composition.

Builds the HTML summary of a submission and wraps it, together with the
materialized uploads, in a multipart/mixed message:

    multipart/mixed; boundary="=_FormRelay_<uuid>"
    ├── text/html; charset="utf-8"      (7bit)
    ├── image/...; attachment           (base64)
    └── image/...; attachment           (base64)
"""

from __future__ import annotations

import html
import re
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import List, Mapping, Sequence

from formrelay.core.config import Settings
from formrelay.services.form_schema import FormVariant
from formrelay.services.upload_storage import Attachment

logger = logging.getLogger(__name__)

# Longest run of submitted text on one body line
FOLD_WIDTH = 76
# A character reference or a single character
_TOKEN = re.compile(r"&#?\w+;|.", re.DOTALL)

_STYLE = """
            body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
            .container { max-width: 600px; margin: 0 auto; padding: 20px; }
            .header { background-color: #f4f4f4; padding: 15px; border-radius: 5px; margin-bottom: 20px; }
            .field { margin-bottom: 15px; }
            .label { font-weight: bold; color: #2563eb; }
            .value { margin-top: 5px; }"""


@dataclass
class ComposedMessage:
    recipient: str
    subject: str
    html_body: str
    attachments: List[Attachment]
    boundary: str
    sender_name: str
    sender_email: str
    mime: EmailMessage = field(repr=False, default_factory=EmailMessage)


def new_boundary() -> str:
    return f"=_FormRelay_{uuid.uuid4().hex}"


def fold_value(value: str, width: int = FOLD_WIDTH) -> str:
    """
    Make an escaped value safe for a 7bit body.

    Non-ASCII characters become character references, then the value is cut
    into segments of at most ``width`` characters joined by ``<wbr\\n>``. The
    newline sits inside the tag, so the rendered text is unchanged while no
    body line can exceed the 998 octet limit of RFC 5322. Character
    references are never split.
    """
    value = value.encode("ascii", "xmlcharrefreplace").decode("ascii")
    if len(value) <= width:
        return value

    segments: List[str] = []
    current = ""
    for token in _TOKEN.findall(value):
        if current and len(current) + len(token) > width:
            segments.append(current)
            current = ""
        current += token
    segments.append(current)
    return "<wbr\n>".join(segments)


def _field_block(label: str, value: str) -> str:
    return (
        "            <div class='field'>\n"
        f"                <div class='label'>{label}:</div>\n"
        f"                <div class='value'>{fold_value(value)}</div>\n"
        "            </div>\n"
    )


def render_html(
    variant: FormVariant,
    fields: Mapping[str, str],
    attachments: Sequence[Attachment],
    received_at: datetime,
) -> str:
    """
    Render the notification body.

    Field values are embedded as-is; they were HTML-escaped by the validator.
    Attachment names come straight from the client and are escaped here.
    The result is pure ASCII: anything else becomes a character reference so
    the part can travel as 7bit.
    """
    blocks = [_field_block(rule.label, fields.get(rule.name, "")) for rule in variant.fields]

    items = "".join(
        f"                        <li>{slot.body_label}: {fold_value(html.escape(attachment.filename))}</li>\n"
        for slot, attachment in zip(variant.slots, attachments)
    )
    blocks.append(
        "            <div class='field'>\n"
        f"                <div class='label'>{variant.attachments_label}:</div>\n"
        "                <div class='value'>\n"
        "                    <ul>\n"
        f"{items}"
        "                    </ul>\n"
        "                </div>\n"
        "            </div>\n"
    )

    document = (
        "<html>\n"
        "    <head>\n"
        f"        <style>{_STYLE}\n        </style>\n"
        "    </head>\n"
        "    <body>\n"
        "        <div class='container'>\n"
        "            <div class='header'>\n"
        f"                <h2>{variant.heading}</h2>\n"
        f"                <p>Received on: {received_at.strftime('%Y-%m-%d %H:%M:%S')}</p>\n"
        "            </div>\n"
        f"{''.join(blocks)}"
        "        </div>\n"
        "    </body>\n"
        "</html>\n"
    )
    return document.encode("ascii", "xmlcharrefreplace").decode("ascii")


class MessageComposer:
    def __init__(self, settings: Settings):
        self.settings = settings

    def compose(
        self,
        variant: FormVariant,
        fields: Mapping[str, str],
        attachments: Sequence[Attachment],
    ) -> ComposedMessage:
        if len(attachments) != len(variant.slots):
            raise ValueError(
                f"{variant.key} expects {len(variant.slots)} attachments, got {len(attachments)}"
            )

        settings = self.settings
        composed = ComposedMessage(
            recipient=formataddr((settings.RECIPIENT_NAME, settings.RECIPIENT_EMAIL)),
            subject=getattr(settings, variant.subject_setting),
            html_body=render_html(variant, fields, attachments, datetime.now()),
            attachments=list(attachments),
            boundary=new_boundary(),
            sender_name=settings.SENDER_NAME,
            sender_email=settings.SENDER_EMAIL,
        )
        composed.mime = self.build_mime(composed)
        return composed

    def build_mime(self, composed: ComposedMessage) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((composed.sender_name, composed.sender_email))
        msg["To"] = composed.recipient
        msg["Reply-To"] = composed.sender_email
        msg["Subject"] = composed.subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=composed.sender_email.rpartition("@")[2] or None)
        msg["X-Mailer"] = f"{self.settings.PROJECT_NAME}/{self.settings.VERSION}"

        msg.set_content(composed.html_body, subtype="html", charset="utf-8", cte="7bit")

        for attachment in composed.attachments:
            maintype, subtype = ("application", "octet-stream")
            if attachment.content_type and "/" in attachment.content_type:
                maintype, subtype = attachment.content_type.split("/", 1)
            msg.add_attachment(
                attachment.path.read_bytes(),
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )

        if msg.is_multipart():
            msg.set_boundary(composed.boundary)

        logger.debug(
            "Composed message subject=%r attachments=%s",
            composed.subject,
            len(composed.attachments),
        )
        return msg
