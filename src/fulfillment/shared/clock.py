"""Time helpers shared by the fulfillment aggregates.

Persisted timestamps may come back naive depending on the provider, so all
comparisons go through `as_utc`.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def not_before(value: datetime, floor: datetime | None) -> datetime:
    """Clamp `value` so it never precedes `floor`."""
    value = as_utc(value)
    floor = as_utc(floor)
    if floor is not None and floor > value:
        return floor
    return value
