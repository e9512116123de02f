"""Database schema and connection management."""

import sqlite3
from pathlib import Path
from typing import Optional


class DatabaseConnection:
    """Database connection and schema management."""

    SCHEMA_VERSION = "1.0"

    def __init__(self, db_path: Path):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Establish database connection.

        The connection is shared by every session thread; callers serialize
        access (see MessageStore).

        Returns:
            SQLite connection object
        """
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row

        return self._conn

    def execute_schema(self) -> None:
        """Create database tables if they don't exist."""
        conn = self.connect()

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS captured_messages (
                message_id TEXT NOT NULL PRIMARY KEY,
                sender TEXT NOT NULL,
                subject TEXT NOT NULL,
                size INTEGER NOT NULL,
                raw_path TEXT NOT NULL,
                peer TEXT,
                helo TEXT,
                auth_username TEXT,
                received_at TEXT NOT NULL
            )
        """
        )

        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_message_received
            ON captured_messages(received_at)
        """
        )

        # Recipients keep their RCPT TO order through position
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS message_recipients (
                message_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                address TEXT NOT NULL,
                PRIMARY KEY (message_id, position),
                FOREIGN KEY (message_id)
                    REFERENCES captured_messages(message_id)
                    ON DELETE CASCADE
            )
        """
        )

        conn.commit()

    def migrate(self) -> None:
        """Run database migrations if needed."""
        self.execute_schema()

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
