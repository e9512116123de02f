"""Captured message data models."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from .envelope import FrozenEnvelope


@dataclass(frozen=True)
class Message:
    """
    A message handed from an SMTP session to the store.

    Attributes:
        envelope: Sender and recipients from the SMTP transaction
        body: Raw MIME bytes, dot-unstuffed, CRLF line endings
        received_at: UTC timestamp of the end-of-data marker
        peer: Client address as "host:port"
        helo: Name given in EHLO/HELO
        auth_username: Username presented in AUTH, if any
    """

    envelope: FrozenEnvelope
    body: bytes
    received_at: datetime
    peer: Optional[str] = None
    helo: Optional[str] = None
    auth_username: Optional[str] = None

    def __post_init__(self):
        """Validate fields after initialization."""
        if not self.envelope.recipients:
            raise ValueError("message requires at least one recipient")

    @property
    def size(self) -> int:
        return len(self.body)


@dataclass
class StoredMessage:
    """
    A message as listed by the store.

    Attributes:
        message_id: Store-assigned unique identifier
        sender: Envelope sender
        recipients: Envelope recipients
        received_at: When DATA completed
        size: Body size in bytes
        subject: Decoded Subject header ("" if absent)
        raw_path: Location of the raw .eml file
        peer: Client address
        helo: EHLO/HELO name
        auth_username: AUTH username
    """

    message_id: str
    sender: str
    recipients: Tuple[str, ...]
    received_at: datetime
    size: int
    subject: str
    raw_path: Path
    peer: Optional[str] = None
    helo: Optional[str] = None
    auth_username: Optional[str] = None
