"""
Identifier generation and validation
"""

import uuid

from ..errors import EntropyError


MAX_ENTRY_ID_LENGTH = 128

# Argument values that make inspect report every identifier
INSPECT_ALL_ALIASES = frozenset({"*", "all"})


def generate_entry_id() -> str:
    """
    Generate a fresh 128-bit random identifier

    Returns:
        UUID4 string

    Raises:
        EntropyError: If the operating system entropy source fails
    """
    try:
        return str(uuid.uuid4())
    except (OSError, NotImplementedError) as e:
        raise EntropyError(f"Entropy source unavailable: {e}") from e


def validate_entry_id(entry_id: str) -> bool:
    """
    Validate identifier format and basic requirements

    Args:
        entry_id: Identifier to validate

    Returns:
        True if valid, False otherwise
    """
    if not isinstance(entry_id, str):
        return False

    if not entry_id or len(entry_id.strip()) == 0:
        return False

    if len(entry_id) > MAX_ENTRY_ID_LENGTH:
        return False

    # Identifiers travel as URL path segments
    if "/" in entry_id or any(ord(c) < 32 for c in entry_id):
        return False

    if entry_id.strip().lower() in INSPECT_ALL_ALIASES:
        return False

    return True
