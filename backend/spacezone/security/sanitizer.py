"""
Input sanitization for user supplied text.

Rejects:
- Null bytes
- Control characters (except newlines/tabs in message content)
- Script/XSS payloads in single-line profile fields
"""
import re
from typing import Optional


class InputSanitizer:
    """Validates and sanitizes user input."""

    NULL_BYTE_PATTERN = re.compile(r'\x00')
    CONTROL_CHAR_PATTERN = re.compile(r'[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f]')  # Except \t=0x09, \n=0x0a, \r=0x0d
    LINE_BREAK_PATTERN = re.compile(r'[\r\n\t]')
    SCRIPT_PATTERN = re.compile(r'<script|javascript:|onerror|onclick|<iframe|<embed', re.IGNORECASE)
    USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_.\-]+$')

    @staticmethod
    def sanitize_string(value: str, max_length: Optional[int] = None, allow_newlines: bool = False) -> str:
        """
        Sanitize string input.

        Raises:
            ValueError: If input contains dangerous patterns
        """
        if not isinstance(value, str):
            raise ValueError("Input must be string")

        if InputSanitizer.NULL_BYTE_PATTERN.search(value):
            raise ValueError("Null bytes not allowed")

        if InputSanitizer.CONTROL_CHAR_PATTERN.search(value):
            raise ValueError("Control characters not allowed")

        if not allow_newlines and InputSanitizer.LINE_BREAK_PATTERN.search(value):
            raise ValueError("Line breaks not allowed")

        if max_length and len(value) > max_length:
            raise ValueError(f"Input exceeds max length of {max_length}")

        return value

    @staticmethod
    def sanitize_username(value: str) -> str:
        """Validate username format (alphanumeric + dot/underscore/dash)."""
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Username must be at least 3 characters")

        sanitized = InputSanitizer.sanitize_string(value, max_length=64)

        if not InputSanitizer.USERNAME_PATTERN.match(sanitized):
            raise ValueError("Username must contain only alphanumeric, dot, dash, underscore")

        return sanitized

    @staticmethod
    def sanitize_display_name(value: str) -> str:
        sanitized = InputSanitizer.sanitize_string(value.strip(), max_length=100)
        if not sanitized:
            raise ValueError("Name cannot be empty")
        if InputSanitizer.SCRIPT_PATTERN.search(sanitized):
            raise ValueError("Script/XSS patterns not allowed")
        return sanitized

    @staticmethod
    def sanitize_content(value: str) -> str:
        """Chat message content: newlines allowed, returned trimmed. Length is checked by the caller."""
        return InputSanitizer.sanitize_string(value, allow_newlines=True).strip()
