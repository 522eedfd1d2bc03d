"""
Utils 패키지
"""

from .normalization import (
    NumberRule,
    normalize_number,
    optional_number,
    to_decimal,
    normalize_text,
    normalize_unit,
    require_name,
)
from .tristate import CLEARED, UNCHANGED, Cleared, Set, Unchanged, field_patch, resolve

__all__ = [
    "NumberRule",
    "normalize_number",
    "optional_number",
    "to_decimal",
    "normalize_text",
    "normalize_unit",
    "require_name",
    "CLEARED",
    "UNCHANGED",
    "Cleared",
    "Set",
    "Unchanged",
    "field_patch",
    "resolve",
]
