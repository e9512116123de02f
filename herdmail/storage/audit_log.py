"""Audit logging for capture events."""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class AuditLog:
    """JSON-lines log of captured messages and storage failures."""

    def __init__(self, log_path: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file (default: ~/.herdmail/logs/audit.log)
        """
        if log_path is None:
            log_path = Path("~/.herdmail/logs/audit.log").expanduser()

        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log_message_captured(
        self,
        message_id: str,
        sender: str,
        recipients: Sequence[str],
        size: int,
        peer: Optional[str],
        auth_username: Optional[str],
    ) -> None:
        """
        Log a message that reached the store.

        Args:
            message_id: Store-assigned identifier
            sender: Envelope sender
            recipients: Envelope recipients
            size: Body size in bytes
            peer: Client address
            auth_username: Username presented in AUTH
        """
        self._write_event(
            {
                "event_type": "message_captured",
                "message_id": message_id,
                "sender": sender,
                "recipients": list(recipients),
                "size": size,
                "peer": peer,
                "auth_username": auth_username,
            }
        )

    def log_storage_error(self, sender: str, peer: Optional[str], error_details: str) -> None:
        self._write_event(
            {
                "event_type": "storage_error",
                "sender": sender,
                "peer": peer,
                "error_details": error_details,
            }
        )

    def read_events(self) -> list[dict]:
        """Return every well-formed event in the log, oldest first."""
        events = []

        if self.log_path.exists():
            with open(self.log_path, "r", encoding="utf-8") as f:
                for line_number, line in enumerate(f, start=1):
                    line = line.strip()
                    if line:
                        try:
                            events.append(json.loads(line))
                        except json.JSONDecodeError as e:
                            # Torn line from a crash mid-write
                            logger.warning(
                                f"Skipping malformed audit line {line_number} in {self.log_path}: {e}"
                            )

        return events

    def export_events(self, output_path: Path) -> int:
        """
        Export all audit events to a JSON file.

        Args:
            output_path: Path to output JSON file

        Returns:
            Number of exported events
        """
        events = self.read_events()

        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(events, f, indent=2, ensure_ascii=False)

        return len(events)

    def _write_event(self, event: dict) -> None:
        event = {"timestamp": datetime.now(timezone.utc).isoformat(), **event}
        with self._lock:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event, ensure_ascii=False) + "\n")
