import html
import re


def sanitize_input(value) -> str:
    """Normalize a submitted text field before validation.

    Trims surrounding whitespace, strips backslash escapes and HTML-escapes
    the result so the value can be embedded in the email body as-is.
    """
    if value is None:
        return ""
    value = str(value).strip()
    # "\'" -> "'", "\\" -> "\", trailing lone backslash dropped
    value = re.sub(r"\\(.?)", r"\1", value, flags=re.DOTALL)
    return html.escape(value, quote=True)


def redact_pii(message: str) -> str:
    """Redact personally identifiable information from log messages.

    Masks e-mail addresses, IPv4 addresses and password-like values. Form
    submissions carry sender and recipient addresses that must not end up
    verbatim in log files.
    """
    if not isinstance(message, str):
        return str(message)

    # Emails: user@example.com -> u***@example.com
    message = re.sub(
        r"[\w.-]+@[\w.-]+\.\w+",
        lambda m: m.group()[0] + "***@" + m.group().split("@")[1],
        message,
    )

    # IPs (IPv4): 192.168.1.100 -> 192.168.1.***
    message = re.sub(
        r"\b(\d{1,3}\.\d{1,3}\.\d{1,3}\.)\d{1,3}\b", r"\1***", message
    )

    # Password values in common patterns
    message = re.sub(
        r'(password|passwd|pwd|secret)["\']?\s*[:=]\s*["\']?[^"\'&\s]+',
        r"\1=[REDACTED]",
        message,
        flags=re.IGNORECASE,
    )

    return message
