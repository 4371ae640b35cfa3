"""PackingSession aggregate — one admin's attempt at boxing an order.

An admin opens a session against a PAID order and scans items into the box.
The session either completes (order becomes PACKED) or is cancelled (order
goes back to PAID). Completed and cancelled sessions are kept as history; no
operation resumes them and a fresh attempt always gets a new session.

Scan progress is stored as a JSON object keyed by order line-item id.
"""

import json
import math
from datetime import datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from fulfillment.domain import fulfillment
from fulfillment.shared.clock import as_utc, not_before, utc_now


class PackingSessionStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SessionNotActive(Exception):
    """The session has already been completed or cancelled."""

    def __init__(self, session_id: str, status: str):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Packing session {session_id} is {status}, not in_progress")


# Reasons recorded on cancelled sessions
CANCELLED_BY_ADMIN = "cancelled"
CANCELLED_BY_EXPIRY = "expired"
ABORTED_ON_FAILURE = "aborted"


def duration_in_minutes(started_at: datetime, completed_at: datetime) -> int:
    """Elapsed whole minutes, rounding half up."""
    seconds = (as_utc(completed_at) - as_utc(started_at)).total_seconds()
    return max(0, math.floor(seconds / 60 + 0.5))


@fulfillment.aggregate
class PackingSession:
    order_id = Identifier(required=True)
    admin_email = String(required=True, max_length=254)
    scan_progress = Text(default="{}")  # JSON {line_item_id: scanned count}
    status = String(choices=PackingSessionStatus, default=PackingSessionStatus.IN_PROGRESS.value)
    started_at = DateTime()
    completed_at = DateTime()
    packing_duration_minutes = Integer()
    cancelled_at = DateTime()
    cancellation_reason = String(max_length=50)

    @classmethod
    def start(cls, order_id: str, admin_email: str, at: datetime | None = None):
        if not (admin_email or "").strip():
            raise ValidationError({"admin_email": ["Admin email is required to open a packing session"]})
        return cls(
            order_id=str(order_id),
            admin_email=admin_email.strip(),
            scan_progress="{}",
            status=PackingSessionStatus.IN_PROGRESS.value,
            started_at=at or utc_now(),
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_active(self) -> bool:
        return self.status == PackingSessionStatus.IN_PROGRESS.value

    def progress_counts(self) -> dict[str, int]:
        return json.loads(self.scan_progress or "{}")

    def _ensure_active(self) -> None:
        if not self.is_active:
            raise SessionNotActive(str(self.id), self.status)

    # -------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------
    def record_progress(self, counts: dict, order) -> None:
        """Merge absolute per-item counts into the current progress.

        Keys must be line items of `order`; each count must be an integer
        between zero and the ordered quantity. Keys not given are left as is.
        """
        self._ensure_active()
        counts = counts or {}

        quantities = {str(item.id): item.quantity for item in (order.items or [])}
        errors = {}
        for item_id, count in counts.items():
            key = str(item_id)
            if key not in quantities:
                errors.setdefault("scan_progress", []).append(f"Item {key} is not part of order {order.id}")
            elif isinstance(count, bool) or not isinstance(count, int):
                errors.setdefault("scan_progress", []).append(f"Count for item {key} must be an integer")
            elif count < 0:
                errors.setdefault("scan_progress", []).append(f"Count for item {key} cannot be negative")
            elif count > quantities[key]:
                errors.setdefault("scan_progress", []).append(
                    f"Count for item {key} exceeds ordered quantity {quantities[key]}"
                )
        if errors:
            raise ValidationError(errors)

        merged = self.progress_counts()
        merged.update({str(k): v for k, v in counts.items()})
        self.scan_progress = json.dumps(merged, sort_keys=True)

    def scan(self, barcode: str, order):
        """Count one unit of the item matching `barcode`. Returns the item."""
        self._ensure_active()

        item = order.find_item_by_barcode(barcode)
        if item is None:
            raise ValidationError({"barcode": [f"Item with code {barcode!r} is not in this order"]})

        counts = self.progress_counts()
        key = str(item.id)
        scanned = counts.get(key, 0)
        if scanned >= item.quantity:
            raise ValidationError({"barcode": [f"All {item.quantity} unit(s) of {item.name} are already scanned"]})

        counts[key] = scanned + 1
        self.scan_progress = json.dumps(counts, sort_keys=True)
        return item

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def complete(self, at: datetime | None = None) -> None:
        self._ensure_active()
        completed_at = not_before(at or utc_now(), self.started_at)
        self.status = PackingSessionStatus.COMPLETED.value
        self.completed_at = completed_at
        self.packing_duration_minutes = duration_in_minutes(self.started_at, completed_at)

    def cancel(self, reason: str = CANCELLED_BY_ADMIN, at: datetime | None = None) -> None:
        self._ensure_active()
        self.status = PackingSessionStatus.CANCELLED.value
        self.cancelled_at = not_before(at or utc_now(), self.started_at)
        self.cancellation_reason = reason

    def reopen(self) -> None:
        """Undo a completion or cancellation whose paired order write failed.

        Only the session manager calls this, while it still holds the store's
        atomic section, so no other caller ever observes the terminal state.
        """
        self.status = PackingSessionStatus.IN_PROGRESS.value
        self.completed_at = None
        self.packing_duration_minutes = None
        self.cancelled_at = None
        self.cancellation_reason = None


def summarize_progress(session: PackingSession, order) -> dict:
    """Per-item scanned/required counts and overall completeness."""
    counts = session.progress_counts()
    items = []
    for item in order.items or []:
        items.append(
            {
                "item_id": str(item.id),
                "name": item.name,
                "barcode": item.barcode or str(item.product_id),
                "scanned": counts.get(str(item.id), 0),
                "required": item.quantity,
            }
        )
    scanned_total = sum(i["scanned"] for i in items)
    required_total = sum(i["required"] for i in items)
    return {
        "session_id": str(session.id),
        "items": items,
        "scanned_total": scanned_total,
        "required_total": required_total,
        "is_complete": bool(items) and all(i["scanned"] >= i["required"] for i in items),
    }
