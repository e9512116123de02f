"""Envelope address parsing for MAIL FROM / RCPT TO arguments."""

import re
from typing import Optional, Tuple

# "FROM:<addr> SIZE=123", whitespace after the colon is tolerated
_PATH_PATTERN = re.compile(r"^(?P<keyword>FROM|TO):\s*<(?P<address>[^<>]*)>(?:\s+(?P<params>.*))?$", re.IGNORECASE)


def parse_path_argument(argument: str, keyword: str) -> Optional[Tuple[str, str]]:
    """
    Parse the argument of a MAIL or RCPT command.

    Args:
        argument: Text after the command verb, e.g. "FROM:<a@x.com> SIZE=10"
        keyword: Expected keyword, "FROM" or "TO"

    Returns:
        Tuple of (address, params) or None if the argument is malformed

    Examples:
        >>> parse_path_argument("FROM:<a@x.com>", "FROM")
        ('a@x.com', '')
        >>> parse_path_argument("TO:<b@x.com> NOTIFY=NEVER", "TO")
        ('b@x.com', 'NOTIFY=NEVER')
        >>> parse_path_argument("FROM:a@x.com", "FROM") is None
        True
    """
    match = _PATH_PATTERN.match(argument.strip())
    if match is None or match.group("keyword").upper() != keyword.upper():
        return None

    return match.group("address").strip(), (match.group("params") or "").strip()
