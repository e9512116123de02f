"""Header decoding helpers for captured messages."""

from email.errors import HeaderParseError
from email.header import decode_header
from email.parser import BytesHeaderParser
from email.policy import compat32


def decode_email_header(header_value: str) -> str:
    """
    Decode an RFC 2047 encoded-word header into a Unicode string.

    Examples:
        >>> decode_email_header("=?UTF-8?B?5Lit5paH?=")
        '中文'
    """
    if not header_value:
        return ""

    try:
        decoded = decode_header(header_value)
    except (HeaderParseError, ValueError):
        # Malformed encoded-word; keep the header as sent
        return header_value

    parts = []
    for content, charset in decoded:
        if not isinstance(content, bytes):
            parts.append(content)
            continue
        try:
            parts.append(content.decode(charset or "ascii"))
        except (UnicodeDecodeError, LookupError):
            parts.append(content.decode("utf-8", errors="replace"))

    return "".join(parts)


def extract_subject(raw_message: bytes) -> str:
    """Return the decoded Subject header of a raw MIME message, or ''."""
    headers = BytesHeaderParser(policy=compat32).parsebytes(raw_message)
    subject = headers.get("Subject")
    if subject is None:
        return ""
    return decode_email_header(str(subject)).strip()


def truncate_subject(subject: str | None, max_length: int = 50) -> str:
    """
    Shorten subject to max_length, ending in '...' when cut.

    Examples:
        >>> truncate_subject("Short subject")
        'Short subject'
        >>> truncate_subject("Password reset for your WordPress account", 20)
        'Password reset fo...'
    """
    if not subject:
        return ""
    if len(subject) <= max_length:
        return subject
    return subject[: max_length - 3] + "..."
