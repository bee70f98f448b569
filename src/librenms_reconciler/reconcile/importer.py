"""Import key resolution."""
from typing import Any

from .errors import InvalidImportKey

# LibreNMS identifiers are 32-bit signed integers
MAX_IDENTIFIER = 2**31 - 1


def resolve_import_key(raw_key: Any) -> int:
    """
    Parse an external import key into an entity identifier.

    Args:
        raw_key: Key as supplied by the caller, e.g. "42"

    Returns:
        The positive integer identifier

    Raises:
        InvalidImportKey: if the key is not a positive 32-bit decimal integer
    """
    if isinstance(raw_key, bool) or not isinstance(raw_key, (str, int)):
        raise InvalidImportKey(
            f"Expected a numeric ID for import, got {raw_key!r}",
            attributes=("id",),
        )

    text = str(raw_key).strip()
    if not text.isascii() or not text.isdigit():
        raise InvalidImportKey(
            f"Expected a numeric ID for import, got {raw_key!r}",
            attributes=("id",),
        )

    identifier = int(text)
    if identifier < 1 or identifier > MAX_IDENTIFIER:
        raise InvalidImportKey(
            f"Import ID {identifier} is out of range (1-{MAX_IDENTIFIER})",
            attributes=("id",),
        )
    return identifier
