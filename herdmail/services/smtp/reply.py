"""SMTP reply lines."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Reply:
    """
    A reply to one command.

    ``lines`` holds more than one entry for multi-line replies such as EHLO;
    every line but the last is rendered with a '-' after the code.
    """

    code: int
    lines: Tuple[str, ...]

    @classmethod
    def of(cls, code: int, *lines: str) -> "Reply":
        return cls(code, lines or ("",))

    @property
    def text(self) -> str:
        return self.lines[-1]

    def render(self) -> bytes:
        rendered = []
        for index, line in enumerate(self.lines):
            separator = " " if index == len(self.lines) - 1 else "-"
            rendered.append(f"{self.code}{separator}{line}\r\n")
        return "".join(rendered).encode("utf-8")


# Canned replies
BAD_SEQUENCE = Reply.of(503, "Bad sequence of commands")
NOT_RECOGNIZED = Reply.of(500, "Command not recognized")
SYNTAX_ERROR = Reply.of(501, "Syntax error")
LINE_TOO_LONG = Reply.of(500, "Line too long")
INSUFFICIENT_STORAGE = Reply.of(452, "Insufficient storage")
MESSAGE_TOO_BIG = Reply.of(552, "Message size exceeds fixed maximum message size")
IDLE_TIMEOUT = Reply.of(421, "Idle timeout, closing connection")
SHUTTING_DOWN = Reply.of(421, "Server shutting down, closing connection")
