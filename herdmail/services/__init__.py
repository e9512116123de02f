"""Business logic services"""

from .reporting import MessageFormatter
from .smtp import AuthStub, BindError, ListenerError, SmtpListener, SmtpSession

__all__ = [
    "MessageFormatter",
    "AuthStub",
    "BindError",
    "ListenerError",
    "SmtpListener",
    "SmtpSession",
]
