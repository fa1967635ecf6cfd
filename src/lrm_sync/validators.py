"""
Input validation for entry keys and language codes.

Remote payloads and local resource files are validated before they reach
the merger so that one malformed record can be skipped with a warning
instead of aborting a whole batch.
"""

import re

# Language codes double as file-name fragments (strings.<lang>.json).
_LANGUAGE_CODE_PATTERN = re.compile(r"^[A-Za-z0-9]+(?:[-_][A-Za-z0-9]+)*$")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Entry key")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_entry_key(key: str | None) -> tuple[bool, str]:
    """
    Validate a resource entry key.

    Args:
        key: The key to validate

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Must be a string
        - Cannot be empty or whitespace-only
        - Cannot contain control characters
    """
    if not isinstance(key, str) or not key.strip():
        return (
            False,
            format_validation_error("Entry key", "cannot be empty"),
        )

    if any(ord(ch) < 32 or ord(ch) == 127 for ch in key):
        return (
            False,
            format_validation_error(
                "Entry key", f"{key!r} contains control characters"
            ),
        )

    return (True, "")


def validate_language_code(lang: str | None) -> tuple[bool, str]:
    """
    Validate a language code.

    Args:
        lang: The language code to validate (e.g. "en", "pt-BR", "zh_Hant")

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Must be a non-empty string
        - Only letters, digits, '-' and '_' separators
    """
    if not isinstance(lang, str) or not lang:
        return (
            False,
            format_validation_error("Language code", "cannot be empty"),
        )

    if not _LANGUAGE_CODE_PATTERN.match(lang):
        return (
            False,
            format_validation_error(
                "Language code",
                f"{lang!r} may only contain letters, digits, '-' and '_'",
            ),
        )

    return (True, "")
