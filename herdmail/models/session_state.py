"""SMTP session state."""

from enum import Enum


class SessionState(Enum):
    """Position of a connection in the SMTP dialogue."""

    GREETING = "greeting"
    AFTER_EHLO = "after_ehlo"
    AFTER_AUTH = "after_auth"
    MAIL_FROM = "mail_from"
    RCPT_TO = "rcpt_to"
    DATA = "data"
    DONE = "done"
