"""Input validation utilities."""

import re
from typing import Iterable

# Letters, digits, dot, underscore, hyphen; must not start with a separator.
# Excludes "/" (path and DN separator), "=" (DN delimiter), tabs (index fields) and whitespace.
IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")

# Names the authority itself uses inside the store
RESERVED_IDENTITIES = {"ca"}


def validate_identity(identity: str, reserved: Iterable[str] = ()) -> str:
    """
    Validate a client identity.

    The identity becomes the certificate common name and the file name of the
    key, request, certificate and bundle, so it is restricted to a charset that
    cannot collide with path separators or index/DN delimiters.

    Args:
        identity: Client identity to validate
        reserved: Additional names that may not be issued (e.g. the server name)

    Returns:
        The identity unchanged

    Raises:
        ValueError: If the identity is empty, malformed or reserved

    Example:
        >>> validate_identity("alice-laptop")
        'alice-laptop'
    """
    if not identity or not identity.strip():
        raise ValueError("Identity cannot be empty")

    if not IDENTITY_PATTERN.match(identity):
        raise ValueError(
            f"Invalid identity '{identity}': use 1-64 letters, digits, '.', '_' or '-', "
            "starting with a letter or digit"
        )

    if identity in (".", "..") or identity.endswith("."):
        raise ValueError(f"Invalid identity '{identity}'")

    blocked = {name.lower() for name in RESERVED_IDENTITIES.union(reserved)}
    if identity.lower() in blocked:
        raise ValueError(f"Identity '{identity}' is reserved")

    return identity
