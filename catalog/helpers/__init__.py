"""
Helper utilities for SQL safety and slug generation.
"""

from .slug_helpers import generate_slug
from .sql_helpers import validate_limit, validate_identifier, escape_like, contains_pattern

__all__ = [
    "generate_slug",
    "validate_limit",
    "validate_identifier",
    "escape_like",
    "contains_pattern",
]
