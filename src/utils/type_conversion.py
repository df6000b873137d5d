"""Type conversion utilities for safe casting operations."""

from typing import Any

FALSE_STRINGS = frozenset({"0", "off", "disabled", "no", "false", ""})


def safe_int(value: Any) -> int | None:
    """
    Safely convert value to int.

    Returns:
        int: Converted integer or None if conversion fails
    """
    if value is None:
        return None
    try:
        return int(value)
    except Exception:
        return None


def is_truthy(value: Any) -> bool:
    """Interpret loosely typed flags from front matter and settings.

    `yes`, `on`, `enabled`, `1` and `true` (any case) are true, as is any other
    non-empty value; `no`, `off`, `disabled`, `0`, `false`, the empty string
    and None are false.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)
