"""Shared fixtures for herdmail tests."""

import socket

import pytest

from herdmail.config.settings import ServerConfig
from herdmail.services.smtp.listener import SmtpListener
from herdmail.storage.audit_log import AuditLog
from herdmail.storage.database import DatabaseConnection
from herdmail.storage.message_store import MessageStore


class RawSmtpClient:
    """Line-level SMTP client for checking exact reply codes."""

    def __init__(self, address, timeout=5.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self._file = self.sock.makefile("rb")

    def read_reply(self):
        """Return (code, [text lines]) for one possibly multi-line reply."""
        lines = []
        while True:
            raw = self._file.readline()
            if not raw:
                raise ConnectionError("server closed the connection")
            line = raw.decode("utf-8").rstrip("\r\n")
            lines.append(line[4:])
            if line[3:4] != "-":
                return int(line[:3]), lines

    def send_line(self, line):
        self.sock.sendall(line.encode("utf-8") + b"\r\n")

    def command(self, line):
        self.send_line(line)
        return self.read_reply()[0]

    def send_raw(self, data):
        self.sock.sendall(data)

    def at_eof(self):
        return self._file.readline() == b""

    def close(self):
        self._file.close()
        self.sock.close()


@pytest.fixture
def store(tmp_path):
    """Create a message store in a temporary directory."""
    db = DatabaseConnection(tmp_path / "test.db")
    store = MessageStore(db, tmp_path / "messages")
    yield store
    db.close()


@pytest.fixture
def audit_log(tmp_path):
    return AuditLog(tmp_path / "logs" / "audit.log")


@pytest.fixture
def server_config():
    return ServerConfig(host="127.0.0.1", port=0, idle_timeout=5.0, poll_interval=0.05)


@pytest.fixture
def listener(server_config, store, audit_log):
    """Start a listener on a free port."""
    listener = SmtpListener(server_config, store, audit_log=audit_log)
    listener.start()
    yield listener
    listener.stop()


@pytest.fixture
def client_factory(listener):
    clients = []

    def connect():
        client = RawSmtpClient(listener.address)
        clients.append(client)
        return client

    yield connect

    for client in clients:
        client.close()
