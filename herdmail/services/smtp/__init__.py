"""SMTP capture server: listener, session state machine and auth stub."""

from .auth import AuthResult, AuthStub
from .connection import LineReader, SmtpConnection
from .listener import BindError, ListenerError, SmtpListener
from .reply import Reply
from .session import SmtpSession

__all__ = [
    "AuthResult",
    "AuthStub",
    "LineReader",
    "SmtpConnection",
    "BindError",
    "ListenerError",
    "SmtpListener",
    "Reply",
    "SmtpSession",
]
