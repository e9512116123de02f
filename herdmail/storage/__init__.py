"""Data persistence layer"""

from .audit_log import AuditLog
from .database import DatabaseConnection
from .message_store import MessageStore, StorageError, StorageFullError

__all__ = [
    "AuditLog",
    "DatabaseConnection",
    "MessageStore",
    "StorageError",
    "StorageFullError",
]
