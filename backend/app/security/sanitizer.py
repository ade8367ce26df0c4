"""
Input sanitization for mail fields.

Rejects null bytes, control characters (except newlines/tabs in bodies)
and line breaks in single-line fields. Mail text is otherwise stored
verbatim; escaping is left to whoever renders it. File names are reduced
to a safe base name.
"""
import re
from typing import Optional


class InputSanitizer:
    """Validates and sanitizes user input."""

    NULL_BYTE_PATTERN = re.compile(r'\x00')
    CONTROL_CHAR_PATTERN = re.compile(r'[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f]')  # Except \t=0x09, \n=0x0a, \r=0x0d
    LINE_BREAK_PATTERN = re.compile(r'[\r\n]')

    @staticmethod
    def sanitize_string(value: str, max_length: Optional[int] = None, allow_newlines: bool = False) -> str:
        """
        Sanitize string input.

        Args:
            value: Input string
            max_length: Optional max length after sanitization
            allow_newlines: Allow \\n and \\r characters (for body text)

        Returns:
            Sanitized string

        Raises:
            ValueError: On null bytes, control characters, disallowed line breaks or overlength
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
    def sanitize_filename(filename: str) -> str:
        """Prevent path traversal in filenames."""
        if not filename or len(filename) > 255:
            raise ValueError("Invalid filename length")

        # Remove path separators and traversal attempts
        filename = filename.replace('\\', '/').split('/')[-1]

        if '..' in filename:
            raise ValueError("Path traversal not allowed")

        # Allow alphanumeric, dot, dash, underscore, space, parentheses
        filename = re.sub(r'[^a-zA-Z0-9._\-() ]', '', filename)

        filename = re.sub(r'[ ]{2,}', ' ', filename)
        filename = re.sub(r'[.]{2,}', '.', filename)

        if not filename:
            raise ValueError("Filename becomes empty after sanitization")

        return filename

    @staticmethod
    def sanitize_subject(value: str) -> str:
        """Sanitize message subject."""
        sanitized = InputSanitizer.sanitize_string(value, max_length=255, allow_newlines=False)
        return sanitized.strip()

    @staticmethod
    def sanitize_body(value: str) -> str:
        """Sanitize message body (allow newlines)."""
        sanitized = InputSanitizer.sanitize_string(value, max_length=50000, allow_newlines=True)

        # Trim trailing whitespace but preserve message structure
        lines = sanitized.split('\n')
        lines = [line.rstrip() for line in lines]
        return '\n'.join(lines)
