"""Socket side of an SMTP session: buffered line reads with an idle timeout."""

import logging
import socket
import threading
import time
from typing import Optional

from ...models.session_state import SessionState
from .reply import IDLE_TIMEOUT, LINE_TOO_LONG, SHUTTING_DOWN, Reply
from .session import SmtpSession

logger = logging.getLogger(__name__)


class ConnectionClosing(Exception):
    """Base exception for conditions that end a connection."""

    pass


class IdleTimeoutError(ConnectionClosing):
    """Raised when the client sends nothing for idle_timeout seconds."""

    pass


class ShutdownRequestedError(ConnectionClosing):
    """Raised between commands once the listener is stopping."""

    pass


class LineTooLongError(ConnectionClosing):
    """Raised when a line exceeds max_line_length without a terminator."""

    pass


class LineReader:
    """
    Reads LF-terminated lines from a socket.

    Receives are done in slices of poll_interval so that a stop request is
    noticed while waiting for the next command.
    """

    def __init__(
        self,
        sock: socket.socket,
        idle_timeout: float,
        poll_interval: float = 0.5,
        max_line_length: int = 8192,
    ):
        self.sock = sock
        self.idle_timeout = idle_timeout
        self.poll_interval = poll_interval
        self.max_line_length = max_line_length
        self._buffer = bytearray()

    def readline(
        self,
        stop_event: Optional[threading.Event] = None,
        interruptible: bool = True,
    ) -> Optional[bytes]:
        """
        Return the next line including its terminator, or None at EOF.

        Args:
            stop_event: Set when the listener is shutting down
            interruptible: Whether a stop request may end this read

        Raises:
            IdleTimeoutError: If no complete line arrives in time
            ShutdownRequestedError: If stop_event is set and nothing is pending
            LineTooLongError: If the pending line grows past max_line_length
            OSError: On socket errors
        """
        deadline = time.monotonic() + self.idle_timeout

        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                line = bytes(self._buffer[: newline + 1])
                del self._buffer[: newline + 1]
                return line

            if len(self._buffer) > self.max_line_length:
                raise LineTooLongError(f"line exceeds {self.max_line_length} bytes")

            if interruptible and stop_event is not None and stop_event.is_set() and not self._buffer:
                raise ShutdownRequestedError("listener is stopping")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise IdleTimeoutError(f"no data for {self.idle_timeout}s")

            self.sock.settimeout(min(self.poll_interval, remaining))
            try:
                chunk = self.sock.recv(4096)
            except socket.timeout:
                continue

            if not chunk:
                # Peer closed; a partial line without terminator is dropped
                return None

            self._buffer.extend(chunk)


class SmtpConnection:
    """Drives an SmtpSession over an accepted socket until it ends."""

    def __init__(self, sock: socket.socket, session: SmtpSession, reader: LineReader):
        self.sock = sock
        self.session = session
        self.reader = reader

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Serve the connection until QUIT, EOF, timeout or shutdown.

        Raises:
            OSError: On socket errors; the caller releases the socket
        """
        peer = self.session.peer
        self._send(self.session.greeting())

        while not self.session.closed:
            try:
                line = self.reader.readline(
                    stop_event, interruptible=not self._in_data()
                )
            except IdleTimeoutError:
                logger.info(f"[{peer}] idle timeout, closing")
                self._send(IDLE_TIMEOUT)
                return
            except ShutdownRequestedError:
                logger.debug(f"[{peer}] closing for shutdown")
                self._send(SHUTTING_DOWN)
                return
            except LineTooLongError as e:
                logger.warning(f"[{peer}] {e}, closing")
                self._send(LINE_TOO_LONG)
                return

            if line is None:
                logger.info(f"[{peer}] client disconnected")
                return

            reply = self.session.handle_line(line)
            if reply is not None:
                self._send(reply)

    def _in_data(self) -> bool:
        return self.session.state is SessionState.DATA

    def _send(self, reply: Reply) -> None:
        self.sock.settimeout(self.reader.idle_timeout)
        self.sock.sendall(reply.render())
