"""Formatting of captured messages for the command line."""

from .message_formatter import MessageFormatter

__all__ = ["MessageFormatter"]
