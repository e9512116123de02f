"""SMTP session state machine for one client connection."""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ...models.envelope import Envelope
from ...models.message import Message
from ...models.session_state import SessionState
from ...storage.audit_log import AuditLog
from ...storage.message_store import MessageStore, StorageError
from ...utils.address_utils import parse_path_argument
from ...utils.dot_stuffing import TERMINATOR, unstuff_line
from .auth import AuthStub
from .reply import (
    BAD_SEQUENCE,
    INSUFFICIENT_STORAGE,
    MESSAGE_TOO_BIG,
    NOT_RECOGNIZED,
    SYNTAX_ERROR,
    Reply,
)

logger = logging.getLogger(__name__)

DEFAULT_HOSTNAME = "herd.local"
DEFAULT_MAX_MESSAGE_SIZE = 26_214_400


class SmtpSession:
    """
    Command/response handling for a single SMTP connection.

    The session owns no socket: feed it one line at a time with
    handle_line() and send back whatever Reply it returns. Lines received
    in the DATA state are buffered and produce no reply until the
    end-of-data marker.

    Transitions:
        GREETING --EHLO/HELO--> AFTER_EHLO --AUTH--> AFTER_AUTH
        AFTER_AUTH|DONE --MAIL--> MAIL_FROM --RCPT--> RCPT_TO (--RCPT--> RCPT_TO)
        RCPT_TO --DATA--> DATA --"."--> DONE
    """

    def __init__(
        self,
        store: MessageStore,
        auth: Optional[AuthStub] = None,
        hostname: str = DEFAULT_HOSTNAME,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        peer: Optional[str] = None,
        audit_log: Optional[AuditLog] = None,
    ):
        """
        Initialize session.

        Args:
            store: Destination of completed messages
            auth: Authentication stub (default: AuthStub())
            hostname: Name announced in the greeting and EHLO reply
            max_message_size: Largest accepted body, in bytes
            peer: Client address, recorded on captured messages
            audit_log: Optional audit log for capture events
        """
        self.store = store
        self.auth = auth or AuthStub()
        self.hostname = hostname
        self.max_message_size = max_message_size
        self.peer = peer
        self.audit_log = audit_log

        self.state = SessionState.GREETING
        self.envelope = Envelope()
        self.helo: Optional[str] = None
        self.auth_username: Optional[str] = None
        self.authenticated = False
        self.closed = False
        self.stored_ids: List[str] = []

        self._data_lines: List[bytes] = []
        self._data_size = 0
        self._oversize = False

        self._commands: Dict[str, Callable[[str], Reply]] = {
            "EHLO": self._ehlo,
            "HELO": self._helo,
            "AUTH": self._auth,
            "MAIL": self._mail,
            "RCPT": self._rcpt,
            "DATA": self._data,
            "RSET": self._rset,
            "NOOP": self._noop,
            "QUIT": self._quit,
        }

    def greeting(self) -> Reply:
        return Reply.of(220, f"{self.hostname} ESMTP herdmail ready")

    def handle_line(self, line: bytes) -> Optional[Reply]:
        """
        Process one line received from the client.

        Args:
            line: Raw line, with or without its CRLF / LF terminator

        Returns:
            Reply to send, or None while a DATA body is being buffered
        """
        if line.endswith(b"\r\n"):
            line = line[:-2]
        elif line.endswith(b"\n"):
            line = line[:-1]

        if self.state is SessionState.DATA:
            return self._data_line(line)

        command = line.decode("utf-8", errors="replace").strip()
        verb, _, argument = command.partition(" ")
        handler = self._commands.get(verb.upper())

        if handler is None:
            logger.debug(f"[{self.peer}] unrecognized command: {command!r}")
            return NOT_RECOGNIZED

        return handler(argument.strip())

    def _ehlo(self, argument: str) -> Reply:
        if self.state is not SessionState.GREETING:
            return BAD_SEQUENCE
        if not argument:
            return SYNTAX_ERROR

        self.helo = argument
        self.state = SessionState.AFTER_EHLO
        return Reply.of(
            250,
            f"{self.hostname} greets {argument}",
            f"AUTH {' '.join(self.auth.SUPPORTED_MECHANISMS)}",
            f"SIZE {self.max_message_size}",
            "8BITMIME",
        )

    def _helo(self, argument: str) -> Reply:
        if self.state is not SessionState.GREETING:
            return BAD_SEQUENCE
        if not argument:
            return SYNTAX_ERROR

        self.helo = argument
        self.state = SessionState.AFTER_EHLO
        return Reply.of(250, f"{self.hostname} greets {argument}")

    def _auth(self, argument: str) -> Reply:
        if self.state is not SessionState.AFTER_EHLO:
            return BAD_SEQUENCE
        if not argument:
            return SYNTAX_ERROR

        mechanism, _, initial_response = argument.partition(" ")
        result = self.auth.authenticate(mechanism, initial_response.strip() or None)

        self.authenticated = True
        self.auth_username = result.username
        self.state = SessionState.AFTER_AUTH
        return Reply.of(235, "Authentication successful")

    def _mail(self, argument: str) -> Reply:
        if self.state not in (SessionState.AFTER_AUTH, SessionState.DONE):
            return BAD_SEQUENCE

        parsed = parse_path_argument(argument, "FROM")
        if parsed is None:
            return SYNTAX_ERROR

        sender, _params = parsed
        self.envelope.start(sender)
        self.state = SessionState.MAIL_FROM
        return Reply.of(250, "OK")

    def _rcpt(self, argument: str) -> Reply:
        if self.state not in (SessionState.MAIL_FROM, SessionState.RCPT_TO):
            return BAD_SEQUENCE

        parsed = parse_path_argument(argument, "TO")
        if parsed is None or not parsed[0]:
            return SYNTAX_ERROR

        self.envelope.add_recipient(parsed[0])
        self.state = SessionState.RCPT_TO
        return Reply.of(250, "OK")

    def _data(self, argument: str) -> Reply:
        if self.state is not SessionState.RCPT_TO:
            return BAD_SEQUENCE

        self._data_lines = []
        self._data_size = 0
        self._oversize = False
        self.state = SessionState.DATA
        return Reply.of(354, "End data with <CR><LF>.<CR><LF>")

    def _rset(self, argument: str) -> Reply:
        if self.state is SessionState.GREETING:
            return BAD_SEQUENCE

        self.envelope.reset()
        self.state = SessionState.AFTER_AUTH if self.authenticated else SessionState.AFTER_EHLO
        return Reply.of(250, "OK")

    def _noop(self, argument: str) -> Reply:
        return Reply.of(250, "OK")

    def _quit(self, argument: str) -> Reply:
        self.closed = True
        return Reply.of(221, f"{self.hostname} closing connection")

    def _data_line(self, line: bytes) -> Optional[Reply]:
        if line == TERMINATOR:
            return self._finish_data()

        if self._oversize:
            return None

        line = unstuff_line(line)
        self._data_size += len(line) + 2
        if self._data_size > self.max_message_size:
            # Keep reading to the terminator, but stop buffering
            self._oversize = True
            self._data_lines = []
            return None

        self._data_lines.append(line)
        return None

    def _finish_data(self) -> Reply:
        body = b"".join(line + b"\r\n" for line in self._data_lines)
        oversize = self._oversize
        self._data_lines = []
        self._data_size = 0
        self._oversize = False

        if oversize:
            logger.warning(
                f"[{self.peer}] message from {self.envelope.sender!r} exceeds "
                f"{self.max_message_size} bytes, discarded"
            )
            self.envelope.reset()
            self.state = SessionState.AFTER_AUTH
            return MESSAGE_TOO_BIG

        message = Message(
            envelope=self.envelope.freeze(),
            body=body,
            received_at=datetime.now(timezone.utc),
            peer=self.peer,
            helo=self.helo,
            auth_username=self.auth_username,
        )

        try:
            message_id = self.store.save(message)
        except StorageError as e:
            logger.error(f"[{self.peer}] could not store message: {e}")
            self._audit("log_storage_error", message.envelope.sender, self.peer, str(e))
            # Envelope is kept so the client can retry DATA
            self.state = SessionState.RCPT_TO
            return INSUFFICIENT_STORAGE

        logger.info(
            f"Captured message {message_id} from {message.envelope.sender!r} "
            f"to {', '.join(message.envelope.recipients)} ({message.size} bytes)"
        )
        self._audit(
            "log_message_captured",
            message_id=message_id,
            sender=message.envelope.sender,
            recipients=message.envelope.recipients,
            size=message.size,
            peer=self.peer,
            auth_username=self.auth_username,
        )

        self.stored_ids.append(message_id)
        self.envelope.reset()
        self.state = SessionState.DONE
        return Reply.of(250, f"OK: queued as {message_id}")

    def _audit(self, event: str, *args, **kwargs) -> None:
        if self.audit_log is None:
            return
        try:
            getattr(self.audit_log, event)(*args, **kwargs)
        except OSError as e:
            # Audit failures never change the reply
            logger.error(f"[{self.peer}] could not write audit event {event}: {e}")
