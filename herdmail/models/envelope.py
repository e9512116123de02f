"""Envelope data models."""

from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass(frozen=True)
class FrozenEnvelope:
    """
    Envelope of a completed message.

    Attributes:
        sender: Reverse-path from MAIL FROM (may be "" for the null sender)
        recipients: Forward-paths from RCPT TO, in the order received
    """

    sender: str
    recipients: Tuple[str, ...]

    def __post_init__(self):
        """Validate fields after initialization."""
        if not self.recipients:
            raise ValueError("envelope requires at least one recipient")


@dataclass
class Envelope:
    """Envelope being built across MAIL FROM / RCPT TO commands."""

    sender: str = ""
    recipients: List[str] = field(default_factory=list)

    def start(self, sender: str) -> None:
        """Begin a new transaction: set sender, drop earlier recipients."""
        self.sender = sender
        self.recipients = []

    def add_recipient(self, recipient: str) -> None:
        self.recipients.append(recipient)

    def reset(self) -> None:
        self.sender = ""
        self.recipients = []

    def freeze(self) -> FrozenEnvelope:
        """
        Snapshot the envelope for a finished DATA block.

        Raises:
            ValueError: If no recipient has been accepted
        """
        return FrozenEnvelope(sender=self.sender, recipients=tuple(self.recipients))
