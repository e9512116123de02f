"""SMTP dot-stuffing (RFC 5321 section 4.5.2)."""

from typing import Iterable, List

TERMINATOR = b"."


def unstuff_line(line: bytes) -> bytes:
    """Remove the transparency dot a client adds to lines starting with '.'."""
    if line.startswith(b"."):
        return line[1:]
    return line


def stuff_lines(lines: Iterable[bytes]) -> List[bytes]:
    """
    Double the leading period of every line that starts with one.

    Args:
        lines: Body lines without line terminators

    Returns:
        Lines safe to send inside a DATA block
    """
    return [b"." + line if line.startswith(b".") else line for line in lines]
