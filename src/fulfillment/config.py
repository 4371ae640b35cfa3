"""Runtime settings for the fulfillment context, read from the environment."""

import os
from dataclasses import dataclass
from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_SESSION_TTL_MINUTES = 240

_LOCALTIME = "/etc/localtime"


@dataclass(frozen=True)
class FulfillmentSettings:
    environment: str
    store_timezone: tzinfo
    packing_session_ttl_minutes: int
    record_store_adapter: str

    @classmethod
    def from_env(cls) -> "FulfillmentSettings":
        return cls(
            environment=(os.getenv("PROTEAN_ENV") or "development").lower(),
            store_timezone=load_timezone(os.getenv("STORE_TIMEZONE")),
            packing_session_ttl_minutes=_positive_int(
                "PACKING_SESSION_TTL_MINUTES",
                os.getenv("PACKING_SESSION_TTL_MINUTES"),
                DEFAULT_SESSION_TTL_MINUTES,
            ),
            record_store_adapter=(os.getenv("RECORD_STORE_ADAPTER") or "repository").lower(),
        )


def load_timezone(name: str | None) -> tzinfo:
    """IANA zone by name; the host's local zone when unset."""
    if not name:
        return host_timezone()
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        raise ValueError(f"Invalid STORE_TIMEZONE: {name!r} is not a known IANA zone") from None


def host_timezone() -> tzinfo:
    """The host's IANA zone, from TZ or the /etc/localtime link.

    Falls back to UTC when neither names a zone.
    """
    candidates = [os.getenv("TZ", "").lstrip(":")]
    resolved = os.path.realpath(_LOCALTIME)
    if "/zoneinfo/" in resolved:
        candidates.append(resolved.split("/zoneinfo/", 1)[1])

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError, OSError):
            continue
    return ZoneInfo("UTC")


def _positive_int(key: str, raw: str | None, default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Invalid {key}: expected an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"Invalid {key}: must be positive")
    return value


def get_settings() -> FulfillmentSettings:
    return FulfillmentSettings.from_env()
