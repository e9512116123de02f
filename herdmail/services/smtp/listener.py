"""TCP listener: accepts connections and runs one session thread per client."""

import logging
import socket
import threading
from typing import Optional, Set, Tuple

from ...config.settings import ServerConfig
from ...storage.audit_log import AuditLog
from ...storage.message_store import MessageStore
from .auth import AuthStub
from .connection import LineReader, SmtpConnection
from .session import SmtpSession

logger = logging.getLogger(__name__)


class ListenerError(Exception):
    """Base exception for listener failures."""

    pass


class BindError(ListenerError):
    """Raised when the listening socket cannot be bound."""

    pass


class SmtpListener:
    """
    Local SMTP capture server.

    start() binds and returns; connections are accepted on a background
    thread until stop(). The message store is the only state shared
    between session threads.
    """

    def __init__(
        self,
        config: ServerConfig,
        store: MessageStore,
        audit_log: Optional[AuditLog] = None,
        auth: Optional[AuthStub] = None,
        backlog: int = 50,
    ):
        """
        Initialize listener.

        Args:
            config: Server settings (address, timeouts, size limits)
            store: Message store shared by all sessions
            audit_log: Optional audit log for capture events
            auth: Authentication stub (default: AuthStub())
            backlog: listen() backlog
        """
        self.config = config
        self.store = store
        self.audit_log = audit_log
        self.auth = auth or AuthStub()
        self.backlog = backlog

        self._socket: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._sessions: Set[threading.Thread] = set()
        self._sessions_lock = threading.Lock()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); useful when started on port 0."""
        if self._socket is None:
            raise ListenerError("listener is not started")
        host, port = self._socket.getsockname()[:2]
        return host, port

    @property
    def active_sessions(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)

    @property
    def running(self) -> bool:
        return self._socket is not None and not self._stop_event.is_set()

    def start(self, bind_address: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Bind the listening socket and start accepting connections.

        Args:
            bind_address: Address to bind (default: config.host)
            port: Port to bind (default: config.port, 0 picks a free port)

        Raises:
            BindError: If the address cannot be bound
            ListenerError: If the listener was already started
        """
        if self._socket is not None or self._stop_event.is_set():
            raise ListenerError("listener can only be started once")

        host = bind_address or self.config.host
        port = self.config.port if port is None else port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET

        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(self.backlog)
        except OSError as e:
            sock.close()
            raise BindError(f"Could not bind {host}:{port}: {e}") from e

        sock.settimeout(self.config.poll_interval)
        self._socket = sock

        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="smtp-accept", daemon=True
        )
        self._accept_thread.start()

        bound_host, bound_port = self.address
        logger.info(f"SMTP capture server listening on {bound_host}:{bound_port}")

    def serve_forever(self) -> None:
        """Block until stop() is called."""
        while not self._stop_event.wait(timeout=1.0):
            pass

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop accepting and ask every session to close after its current command.

        Args:
            timeout: Seconds to wait for each thread to finish
        """
        if self._stop_event.is_set():
            return

        self._stop_event.set()

        if self._accept_thread is not None:
            self._accept_thread.join(timeout)

        if self._socket is not None:
            self._socket.close()

        with self._sessions_lock:
            sessions = list(self._sessions)
        for thread in sessions:
            thread.join(timeout)

        logger.info("SMTP capture server stopped")

    def _accept_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                client, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_event.is_set():
                    break
                logger.error(f"Error accepting connection: {e}")
                continue

            thread = threading.Thread(
                target=self._serve_connection,
                args=(client, client_address),
                name=f"smtp-session-{client_address[0]}:{client_address[1]}",
                daemon=True,
            )
            with self._sessions_lock:
                self._sessions.add(thread)
            thread.start()

    def _serve_connection(self, client: socket.socket, client_address: tuple) -> None:
        peer = f"{client_address[0]}:{client_address[1]}"
        logger.info(f"Connection from {peer}")

        session = SmtpSession(
            store=self.store,
            auth=self.auth,
            hostname=self.config.hostname,
            max_message_size=self.config.max_message_size,
            peer=peer,
            audit_log=self.audit_log,
        )
        reader = LineReader(
            client,
            idle_timeout=self.config.idle_timeout,
            poll_interval=self.config.poll_interval,
            max_line_length=self.config.max_line_length,
        )

        try:
            SmtpConnection(client, session, reader).run(self._stop_event)
        except OSError as e:
            logger.warning(f"[{peer}] connection error: {e}")
        except Exception:
            logger.exception(f"[{peer}] unexpected error in session")
        finally:
            client.close()
            with self._sessions_lock:
                self._sessions.discard(threading.current_thread())
            logger.info(f"Connection from {peer} closed")
