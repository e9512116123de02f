"""Message formatting for the list/show commands."""

from typing import Optional

from ...models.message import StoredMessage
from ...utils.unicode_utils import truncate_subject

DEFAULT_SUMMARY_TEMPLATE = "{message_id}  {date}  {sender} -> {recipients}  {subject}"


class MessageFormatter:
    """Format captured messages for display."""

    def __init__(self, summary_template: Optional[str] = None, subject_length: int = 50):
        """
        Initialize formatter.

        Args:
            summary_template: Template for one-line summaries
            subject_length: Subjects longer than this are truncated
        """
        self.summary_template = summary_template or DEFAULT_SUMMARY_TEMPLATE
        self.subject_length = subject_length

    def format_summary(self, message: StoredMessage) -> str:
        """
        Format a one-line summary.

        Args:
            message: Stored message

        Returns:
            Formatted summary string
        """
        return self.summary_template.format(
            message_id=message.message_id,
            date=message.received_at.strftime("%Y-%m-%d %H:%M:%S"),
            sender=message.sender or "<>",
            recipients=", ".join(message.recipients),
            subject=truncate_subject(message.subject, max_length=self.subject_length) or "(no subject)",
        )

    def format_detail(self, message: StoredMessage, raw: Optional[bytes] = None) -> str:
        """Format the envelope block shown by 'show', followed by the raw message."""
        lines = [
            f"ID:         {message.message_id}",
            f"Received:   {message.received_at.isoformat()}",
            f"From:       {message.sender or '<>'}",
            f"To:         {', '.join(message.recipients)}",
            f"Subject:    {message.subject}",
            f"Size:       {message.size} bytes",
            f"Client:     {message.peer or '-'} (HELO {message.helo or '-'})",
            f"Auth user:  {message.auth_username or '-'}",
            f"File:       {message.raw_path}",
        ]

        if raw is not None:
            lines.append("")
            lines.append(raw.decode("utf-8", errors="replace").rstrip("\r\n"))

        return "\n".join(lines)
