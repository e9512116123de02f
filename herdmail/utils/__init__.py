"""Utility functions"""

from .address_utils import parse_path_argument
from .dot_stuffing import stuff_lines, unstuff_line
from .unicode_utils import decode_email_header, extract_subject, truncate_subject

__all__ = [
    "parse_path_argument",
    "stuff_lines",
    "unstuff_line",
    "decode_email_header",
    "extract_subject",
    "truncate_subject",
]
