"""
ULID generation and timestamp utilities (stdlib-only).

Default implementations of the :class:`~gridkernel.core.protocols.Clock` and
:class:`~gridkernel.core.protocols.IdGenerator` protocols.

Features:
    - **generate_ulid():** Time-sortable unique IDs (26-char, Crockford base32)
    - **utc_now():** Timezone-aware UTC datetime
    - **SystemClock / UlidGenerator:** protocol adapters over the two above
    - **to_iso8601():** None-safe ISO 8601 formatting for dict/wire views

STDLIB ONLY - NO PYDANTIC.
"""

import secrets
import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def generate_ulid() -> str:
    """
    Generate a ULID identifier.

    Format: 26 characters, base32 encoded, time-sortable.
    48 bits of millisecond timestamp followed by 80 random bits.
    """
    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = _encode_base32(timestamp_ms, 10)
    random_chars = _encode_base32(secrets.randbits(80), 16)
    return timestamp_chars + random_chars


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()


class SystemClock:
    """Clock backed by the host's wall clock and ``time.monotonic_ns``."""

    def now(self) -> datetime:
        return utc_now()

    def monotonic_ticks(self) -> int:
        return time.monotonic_ns()


class UlidGenerator:
    """IdGenerator producing ULIDs."""

    def new_opaque_id(self) -> str:
        return generate_ulid()


# ULID base32 alphabet (Crockford's)
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))
