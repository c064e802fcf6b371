"""Session identifier generation and validation.

The identifier doubles as the directory registration name and the
implicit room name guests use to join a host. Generated identifiers are
SESSION_ID_LENGTH lowercase letters; supplied identifiers only have to be
directory-safe (lowercase letters, digits, '-' and '_').
"""

import re
import secrets

from .constants import SESSION_ID_ALPHABET, SESSION_ID_LENGTH
from .errors import InvalidSessionId

MAX_SESSION_ID_LENGTH = 64

_VALID_ID_RE = re.compile(r"[a-z0-9_-]+")


def generate_session_id(length: int = SESSION_ID_LENGTH) -> str:
    """Generate a random session identifier from a cryptographically strong source."""
    if length < 1:
        raise ValueError("Session identifier length must be positive")
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(length))


def is_valid_session_id(value: object) -> bool:
    """Check that value can be registered with a directory."""
    if not isinstance(value, str):
        return False
    if not 0 < len(value) <= MAX_SESSION_ID_LENGTH:
        return False
    return _VALID_ID_RE.fullmatch(value) is not None


def validate_session_id(value: object) -> str:
    """Return value unchanged if valid, otherwise raise InvalidSessionId."""
    if not is_valid_session_id(value):
        raise InvalidSessionId(
            f"Session identifier must be 1-{MAX_SESSION_ID_LENGTH} characters "
            f"of [a-z0-9_-], got {value!r}"
        )
    assert isinstance(value, str)
    return value
