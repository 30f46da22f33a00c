"""UTC datetime utilities.

Token expiry instants are compared against this clock. Unlike
``datetime.utcnow()`` the result is timezone-aware, so it can be compared
directly with expiry values computed from it.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(UTC)
