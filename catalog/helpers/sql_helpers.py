"""
SQL Helper Functions
Helpers for building SQL safely: whitelisted identifiers, LIKE escaping,
bounded paging values
"""

from typing import Iterable, Union
import logging

logger = logging.getLogger(__name__)

LIKE_ESCAPE_CHAR = "\\"


def validate_limit(limit: Union[int, str], max_limit: int = 1000, default: int = 10) -> int:
    """
    Validate and sanitize a limit parameter.

    Args:
        limit: Limit value (int or str)
        max_limit: Largest value allowed (default: 1000)
        default: Value used when limit is invalid (default: 10)

    Returns:
        int: Sanitized limit value
    """
    try:
        if isinstance(limit, str):
            limit = int(limit)

        if isinstance(limit, bool) or not isinstance(limit, int):
            logger.warning(f"Invalid limit type: {type(limit)}, using default: {default}")
            return default

        if limit < 1:
            logger.warning(f"Limit too small: {limit}, using default: {default}")
            return default

        if limit > max_limit:
            logger.warning(f"Limit too large: {limit}, capping at max_limit: {max_limit}")
            return max_limit

        return limit

    except (ValueError, TypeError) as e:
        logger.warning(f"Error validating limit: {e}, using default: {default}")
        return default


def validate_identifier(identifier: str, allowed: Iterable[str]) -> str:
    """
    Validate a column or table name against a whitelist.
    Identifiers cannot be bound as parameters, so only names in the
    whitelist may ever be embedded into query text.

    Args:
        identifier: Name to validate
        allowed: Names that may be used

    Returns:
        str: The validated name

    Raises:
        ValueError: If the name is not in the whitelist
    """
    allowed = list(allowed)
    if not isinstance(identifier, str):
        raise ValueError(f"Identifier must be a string, got {type(identifier).__name__}")

    identifier = identifier.strip()
    if identifier not in allowed:
        raise ValueError(f"Identifier '{identifier}' is not in allowed list: {allowed}")

    return identifier


def escape_like(value: str) -> str:
    """
    Escape LIKE wildcards so the value matches literally.
    Use together with ``ESCAPE '\\'`` in the query.
    """
    return (
        value.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", LIKE_ESCAPE_CHAR + "%")
        .replace("_", LIKE_ESCAPE_CHAR + "_")
    )


def contains_pattern(value: str) -> str:
    """Substring pattern ``%value%`` with wildcards escaped. Case folding happens in SQL."""
    return f"%{escape_like(value)}%"
