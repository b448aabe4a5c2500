"""
Enum helpers for VARCHAR-based status fields.

Status and type columns are stored as UPPERCASE strings (String(50)), while
pydantic schemas validate input against Python enums. get_enum_value()
accepts either side.
"""

from enum import Enum
from typing import Any, Optional


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(LedgerEntryStatus.CLEARED)
        'CLEARED'
        >>> get_enum_value("CLEARED")
        'CLEARED'
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)

