"""Captured message store: sqlite index plus one raw .eml file per message."""

import logging
import os
import sqlite3
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from ..models.message import Message, StoredMessage
from ..utils.unicode_utils import extract_subject
from .database import DatabaseConnection

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a message cannot be persisted."""

    pass


class StorageFullError(StorageError):
    """Raised when the store has reached its message quota."""

    pass


class MessageStore:
    """
    Thread-safe store for captured messages.

    Every public method holds one lock, so ID assignment and visibility are
    atomic across session threads. A message becomes visible only when its
    index row is committed, which happens after the raw file is in place.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        messages_dir: Path,
        max_messages: Optional[int] = None,
    ):
        """
        Initialize the store.

        Args:
            db: Database connection (schema is created if missing)
            messages_dir: Directory holding raw .eml files
            max_messages: Optional quota; saves beyond it fail with StorageFullError
        """
        self.db = db
        self.messages_dir = messages_dir
        self.max_messages = max_messages
        self._lock = threading.Lock()

        self.messages_dir.mkdir(parents=True, exist_ok=True)
        self.db.execute_schema()

    def save(self, message: Message) -> str:
        """
        Persist a message and return its new identifier.

        Args:
            message: Completed message from an SMTP session

        Returns:
            Unique message identifier

        Raises:
            StorageFullError: If max_messages is reached
            StorageError: If the file or index write fails
        """
        with self._lock:
            if self.max_messages is not None and self._count() >= self.max_messages:
                raise StorageFullError(f"message quota of {self.max_messages} reached")

            message_id = uuid4().hex
            subject = extract_subject(message.body)
            raw_path = self.messages_dir / f"{message_id}.eml"

            try:
                self._write_raw(raw_path, message.body)
            except OSError as e:
                raise StorageError(f"Could not write {raw_path}: {e}") from e

            try:
                self._insert(message_id, message, subject, raw_path)
            except sqlite3.Error as e:
                self.db.connect().rollback()
                raw_path.unlink(missing_ok=True)
                raise StorageError(f"Could not index message {message_id}: {e}") from e

        logger.debug(f"Stored message {message_id} at {raw_path}")
        return message_id

    def get(self, message_id: str) -> Optional[StoredMessage]:
        """
        Find a message by identifier.

        Returns:
            StoredMessage if found, None otherwise
        """
        with self._lock:
            conn = self.db.connect()
            row = conn.execute(
                "SELECT * FROM captured_messages WHERE message_id = ?", (message_id,)
            ).fetchone()

            if row is None:
                return None

            return self._row_to_message(row)

    def get_raw(self, message_id: str) -> Optional[bytes]:
        """Return the raw MIME body of a message, or None if unknown."""
        stored = self.get(message_id)
        if stored is None:
            return None

        try:
            return stored.raw_path.read_bytes()
        except FileNotFoundError:
            # Deleted after the index lookup
            logger.debug(f"Raw file for message {message_id} is gone: {stored.raw_path}")
            return None

    def list(self, limit: Optional[int] = None) -> List[StoredMessage]:
        """
        List stored messages, newest first.

        Args:
            limit: Maximum number of messages to return
        """
        query = "SELECT * FROM captured_messages ORDER BY received_at DESC, rowid DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)

        with self._lock:
            rows = self.db.connect().execute(query, params).fetchall()
            return [self._row_to_message(row) for row in rows]

    def count(self) -> int:
        with self._lock:
            return self._count()

    def delete(self, message_id: str) -> bool:
        """
        Remove a message and its raw file.

        Returns:
            True if the message existed
        """
        with self._lock:
            conn = self.db.connect()
            row = conn.execute(
                "SELECT raw_path FROM captured_messages WHERE message_id = ?", (message_id,)
            ).fetchone()
            if row is None:
                return False

            conn.execute("DELETE FROM message_recipients WHERE message_id = ?", (message_id,))
            conn.execute("DELETE FROM captured_messages WHERE message_id = ?", (message_id,))
            conn.commit()
            Path(row["raw_path"]).unlink(missing_ok=True)

        return True

    def clear(self) -> int:
        """Remove every message. Returns the number removed."""
        with self._lock:
            conn = self.db.connect()
            rows = conn.execute("SELECT raw_path FROM captured_messages").fetchall()
            conn.execute("DELETE FROM message_recipients")
            conn.execute("DELETE FROM captured_messages")
            conn.commit()

            for row in rows:
                Path(row["raw_path"]).unlink(missing_ok=True)

        return len(rows)

    def _count(self) -> int:
        row = self.db.connect().execute("SELECT COUNT(*) FROM captured_messages").fetchone()
        return row[0]

    def _write_raw(self, raw_path: Path, body: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.messages_dir, prefix=".incoming-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(body)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, raw_path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _insert(self, message_id: str, message: Message, subject: str, raw_path: Path) -> None:
        conn = self.db.connect()

        conn.execute(
            """
            INSERT INTO captured_messages
            (message_id, sender, subject, size, raw_path, peer, helo,
             auth_username, received_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                message_id,
                message.envelope.sender,
                subject,
                message.size,
                str(raw_path),
                message.peer,
                message.helo,
                message.auth_username,
                message.received_at.isoformat(),
            ),
        )
        conn.executemany(
            "INSERT INTO message_recipients (message_id, position, address) VALUES (?, ?, ?)",
            [
                (message_id, position, address)
                for position, address in enumerate(message.envelope.recipients)
            ],
        )

        conn.commit()

    def _row_to_message(self, row: sqlite3.Row) -> StoredMessage:
        """Convert database row to StoredMessage."""
        recipients = self.db.connect().execute(
            "SELECT address FROM message_recipients WHERE message_id = ? ORDER BY position",
            (row["message_id"],),
        ).fetchall()

        return StoredMessage(
            message_id=row["message_id"],
            sender=row["sender"],
            recipients=tuple(r["address"] for r in recipients),
            received_at=datetime.fromisoformat(row["received_at"]),
            size=row["size"],
            subject=row["subject"],
            raw_path=Path(row["raw_path"]),
            peer=row["peer"],
            helo=row["helo"],
            auth_username=row["auth_username"],
        )
