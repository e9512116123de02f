"""Data models for captured mail"""

from .envelope import Envelope, FrozenEnvelope
from .message import Message, StoredMessage
from .session_state import SessionState

__all__ = [
    "Envelope",
    "FrozenEnvelope",
    "Message",
    "StoredMessage",
    "SessionState",
]
