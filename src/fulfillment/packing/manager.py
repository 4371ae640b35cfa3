"""Packing session manager — opens, progresses and closes packing sessions.

Every lifecycle change touches two records: the session and its order. The
session is always written first and the order second, both inside the
record store's atomic section. When the order write fails the session write
is undone; if that undo also fails the manager raises CompensationFailed so
the caller can report exactly which record is out of step.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from fulfillment.order.order import Order
from fulfillment.order.status import InvalidTransition, OrderStatus
from fulfillment.packing.session import (
    ABORTED_ON_FAILURE,
    CANCELLED_BY_ADMIN,
    CANCELLED_BY_EXPIRY,
    PackingSession,
    PackingSessionStatus,
    SessionNotActive,
    summarize_progress,
)
from fulfillment.shared.clock import as_utc, utc_now
from fulfillment.store.port import AlreadyExists, PreconditionFailed, RecordStore, StoreError

logger = structlog.get_logger(__name__)

_IN_PROGRESS = PackingSessionStatus.IN_PROGRESS.value


class CompensationFailed(Exception):
    """A two-record change failed halfway and could not be rolled back."""

    def __init__(self, succeeded: list[str], failed: list[str], detail: str):
        self.succeeded = succeeded
        self.failed = failed
        self.detail = detail
        super().__init__(detail)


@dataclass
class ExpiryFailure:
    session_id: str
    order_id: str
    error: str
    # True when the session was cancelled but its order could not be reverted
    partial_failure: bool = False


@dataclass
class ExpiryReport:
    expired: list[str] = field(default_factory=list)
    failed: list[ExpiryFailure] = field(default_factory=list)


class PackingSessionManager:
    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_session(self, session_id: str) -> PackingSession:
        return self.store.get(PackingSession, session_id)

    def get_active_session(self, order_id: str) -> PackingSession | None:
        active = self.store.scan(PackingSession, order_id=str(order_id), status=_IN_PROGRESS)
        return active[0] if active else None

    def list_sessions(self, order_id: str) -> list[PackingSession]:
        self.store.get(Order, order_id)
        sessions = self.store.scan(PackingSession, order_id=str(order_id))
        return sorted(sessions, key=lambda s: as_utc(s.started_at))

    def progress(self, session_id: str) -> dict:
        session = self.store.get(PackingSession, session_id)
        order = self.store.get(Order, session.order_id)
        return summarize_progress(session, order)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def open_session(self, order_id: str, admin_email: str) -> PackingSession:
        """Start packing a PAID order, or return the session already running."""
        with self.store.atomic():
            order = self.store.get(Order, order_id)

            active = self.get_active_session(order_id)
            if active is not None:
                logger.info(
                    "Packing session already active",
                    order_id=str(order_id),
                    session_id=str(active.id),
                    requested_by=admin_email,
                )
                return active

            if order.order_status != OrderStatus.PAID:
                raise InvalidTransition(order.order_status, OrderStatus.IN_PACKING, "packing requires a paid order")

            now = self.clock()
            session = PackingSession.start(order_id, admin_email, at=now)
            try:
                self.store.insert_if_absent(
                    PackingSession,
                    {"order_id": str(order_id), "status": _IN_PROGRESS},
                    session,
                )
            except AlreadyExists as exc:
                return exc.existing

            try:
                self.store.conditional_update(
                    Order,
                    order_id,
                    {"status": OrderStatus.PAID.value},
                    lambda o: o.start_packing(at=now),
                )
            except Exception as exc:
                self._compensate(
                    session,
                    expected=_IN_PROGRESS,
                    undo=lambda s: s.cancel(ABORTED_ON_FAILURE, at=now),
                    cause=exc,
                )
                raise

        logger.info(
            "Packing session opened",
            order_id=str(order_id),
            session_id=str(session.id),
            admin_email=session.admin_email,
        )
        return session

    def update_scan_progress(self, session_id: str, progress: dict) -> PackingSession:
        with self.store.atomic():
            session = self._active_session(session_id)
            order = self.store.get(Order, session.order_id)
            return self.store.conditional_update(
                PackingSession,
                session_id,
                {"status": _IN_PROGRESS},
                lambda s: s.record_progress(progress, order),
            )

    def scan_item(self, session_id: str, barcode: str) -> PackingSession:
        with self.store.atomic():
            session = self._active_session(session_id)
            order = self.store.get(Order, session.order_id)
            session = self.store.conditional_update(
                PackingSession,
                session_id,
                {"status": _IN_PROGRESS},
                lambda s: s.scan(barcode, order),
            )
        logger.debug("Item scanned", session_id=str(session_id), barcode=barcode)
        return session

    def complete_session(self, session_id: str) -> PackingSession:
        with self.store.atomic():
            session = self._active_session(session_id)
            order = self.store.get(Order, session.order_id)
            if order.order_status != OrderStatus.IN_PACKING:
                raise InvalidTransition(order.order_status, OrderStatus.PACKED, "order is not being packed")

            now = self.clock()
            session = self.store.conditional_update(
                PackingSession,
                session_id,
                {"status": _IN_PROGRESS},
                lambda s: s.complete(at=now),
            )
            try:
                self.store.conditional_update(
                    Order,
                    session.order_id,
                    {"status": OrderStatus.IN_PACKING.value},
                    lambda o: o.mark_packed(session.completed_at),
                )
            except Exception as exc:
                self._compensate(
                    session,
                    expected=PackingSessionStatus.COMPLETED.value,
                    undo=lambda s: s.reopen(),
                    cause=exc,
                )
                raise

        logger.info(
            "Packing session completed",
            order_id=str(session.order_id),
            session_id=str(session.id),
            duration_minutes=session.packing_duration_minutes,
        )
        return session

    def cancel_session(self, session_id: str, reason: str = CANCELLED_BY_ADMIN) -> PackingSession:
        with self.store.atomic():
            session = self._active_session(session_id)
            order = self.store.get(Order, session.order_id)
            if order.order_status != OrderStatus.IN_PACKING:
                raise InvalidTransition(order.order_status, OrderStatus.PAID, "order is not being packed")

            now = self.clock()
            session = self.store.conditional_update(
                PackingSession,
                session_id,
                {"status": _IN_PROGRESS},
                lambda s: s.cancel(reason, at=now),
            )
            try:
                self.store.conditional_update(
                    Order,
                    session.order_id,
                    {"status": OrderStatus.IN_PACKING.value},
                    lambda o: o.revert_packing(at=now),
                )
            except Exception as exc:
                self._compensate(
                    session,
                    expected=PackingSessionStatus.CANCELLED.value,
                    undo=lambda s: s.reopen(),
                    cause=exc,
                )
                raise

        logger.info(
            "Packing session cancelled",
            order_id=str(session.order_id),
            session_id=str(session.id),
            reason=reason,
        )
        return session

    def expire_stale_sessions(self, older_than_minutes: int, as_of: datetime | None = None) -> ExpiryReport:
        """Cancel in-progress sessions started more than `older_than_minutes` ago.

        Meant to be triggered by an operator or an external scheduler; nothing
        in the workflow calls it on its own. Each stale session is tried
        independently: a failure is recorded in the report and the sweep moves
        on to the next one.
        """
        cutoff = as_utc(as_of or self.clock()) - timedelta(minutes=older_than_minutes)
        logger.info("Checking for stale packing sessions", cutoff=cutoff.isoformat())

        report = ExpiryReport()
        stale = [s for s in self.store.scan(PackingSession, status=_IN_PROGRESS) if as_utc(s.started_at) <= cutoff]
        if not stale:
            logger.info("No stale packing sessions found")
            return report

        for session in stale:
            session_id, order_id = str(session.id), str(session.order_id)
            try:
                self.cancel_session(session_id, reason=CANCELLED_BY_EXPIRY)
                report.expired.append(session_id)
            except CompensationFailed as exc:
                report.failed.append(ExpiryFailure(session_id, order_id, exc.detail, partial_failure=True))
            except (
                SessionNotActive,
                InvalidTransition,
                PreconditionFailed,
                ObjectNotFoundError,
                ValidationError,
                StoreError,
            ) as exc:
                logger.warning(
                    "Failed to expire packing session",
                    session_id=session_id,
                    order_id=order_id,
                    error=str(exc),
                )
                report.failed.append(ExpiryFailure(session_id, order_id, str(exc)))

        logger.info(
            "Stale packing session cleanup complete",
            expired_count=len(report.expired),
            failed_count=len(report.failed),
        )
        return report

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _active_session(self, session_id: str) -> PackingSession:
        session = self.store.get(PackingSession, session_id)
        if not session.is_active:
            raise SessionNotActive(str(session.id), session.status)
        return session

    def _compensate(self, session: PackingSession, expected: str, undo: Callable, cause: Exception) -> None:
        """Roll the session back after its order write failed."""
        try:
            self.store.conditional_update(PackingSession, str(session.id), {"status": expected}, undo)
        except Exception as exc:
            detail = (
                f"Packing session {session.id} was written but order {session.order_id} was not "
                f"({cause}); rolling the session back failed ({exc})"
            )
            logger.error(
                "Compensation failed",
                session_id=str(session.id),
                order_id=str(session.order_id),
                cause=str(cause),
                error=str(exc),
            )
            raise CompensationFailed(
                succeeded=[f"packing_session:{session.id}"],
                failed=[f"order:{session.order_id}"],
                detail=detail,
            ) from exc

        logger.warning(
            "Rolled back packing session after order write failed",
            session_id=str(session.id),
            order_id=str(session.order_id),
            cause=str(cause),
        )
