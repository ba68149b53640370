"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def from_epoch_seconds(value: object) -> datetime | None:
    """Parse a provider epoch-seconds value ("1704067200" or 1704067200).

    Returns None for missing, non-numeric or out-of-range values.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(str(value).strip())
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
