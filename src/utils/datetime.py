# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities.

All timestamps are timezone-aware UTC so naive and aware datetimes never mix.

Usage:
    from src.utils.datetime import utc_now

    now = utc_now()

    # For Pydantic model defaults
    started_at: datetime = Field(default_factory=utc_now)
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from databases without tz support.

    Args:
        dt: Datetime that may be naive.

    Returns:
        Timezone-aware datetime, or None if dt is None.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def elapsed_seconds(start: datetime, end: datetime | None = None) -> int:
    """Whole seconds between two datetimes (end defaults to now)."""
    end = end or utc_now()
    return max(0, int((end - start).total_seconds()))
