"""
Input validation and sanitization utilities.
Rejects malformed API inputs with ValidationError before they reach services.
"""

import re

from shared_utils.error_handler import ValidationError
from shared_utils.constants import Defaults


_ROOM_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,128}$')


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_non_empty_string(value: str, field_name: str) -> str:
        """Validate non-empty string.

        Args:
            value: String to validate
            field_name: Name of field for error messages

        Returns:
            Validated string (stripped)

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")

        if not value or not value.strip():
            raise ValidationError(f"{field_name} cannot be empty")

        return value.strip()

    @staticmethod
    def validate_room_name(value: str) -> str:
        """Validate a room name (URL path segment, 1-128 safe characters).

        Raises:
            ValidationError: If validation fails
        """
        value = InputValidator.validate_non_empty_string(value, "room_name")
        if not _ROOM_NAME_PATTERN.match(value):
            raise ValidationError(
                "room_name may only contain letters, digits, '-' and '_' (max 128)",
                context={"room_name": value[:128]},
            )
        return value

    @staticmethod
    def validate_message(value: str, max_length: int = Defaults.MAX_MESSAGE_CHARS) -> str:
        """Validate a chat message.

        Raises:
            ValidationError: If the message is empty or too long
        """
        value = InputValidator.validate_non_empty_string(value, "message")
        if len(value) > max_length:
            raise ValidationError(
                f"message too long (max {max_length} characters)",
                context={"length": len(value)},
            )
        return value
