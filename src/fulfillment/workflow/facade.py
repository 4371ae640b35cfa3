"""Workflow facade — the public operations of the fulfillment workflow.

Each operation returns a Result. Domain exceptions raised below this layer
are translated here and nowhere else:

    InvalidTransition, SessionNotActive, PreconditionFailed → INVALID_STATE
    ValidationError (including unknown requested statuses)   → VALIDATION
    ObjectNotFoundError                                       → NOT_FOUND
    CompensationFailed                                        → PARTIAL_FAILURE
    StoreError and anything unexpected                        → STORE_ERROR
"""

from collections.abc import Callable
from datetime import datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from fulfillment.config import FulfillmentSettings
from fulfillment.order.order import Order
from fulfillment.order.status import InvalidTransition, parse_status
from fulfillment.packing.manager import CompensationFailed, PackingSessionManager
from fulfillment.packing.session import CANCELLED_BY_ADMIN, SessionNotActive
from fulfillment.shared.clock import as_utc, utc_now
from fulfillment.statistics.aggregator import compute_order_statistics
from fulfillment.store.port import PreconditionFailed, RecordStore, StoreError
from fulfillment.workflow.errors import ErrorCode, PartialFailure, Result

logger = structlog.get_logger(__name__)


class FulfillmentWorkflow:
    def __init__(
        self,
        store: RecordStore,
        settings: FulfillmentSettings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.packing = PackingSessionManager(store, clock=clock)

    def _run(self, operation: str, action: Callable, **context) -> Result:
        try:
            return Result.success(action())
        except (InvalidTransition, SessionNotActive, PreconditionFailed) as exc:
            logger.info("Workflow operation rejected", operation=operation, reason=str(exc), **context)
            return Result.failure(ErrorCode.INVALID_STATE, str(exc))
        except ValidationError as exc:
            logger.info("Workflow operation invalid", operation=operation, errors=exc.messages, **context)
            return Result.failure(ErrorCode.VALIDATION, _first_message(exc.messages), details=exc.messages)
        except ObjectNotFoundError as exc:
            return Result.failure(ErrorCode.NOT_FOUND, _not_found_message(exc, context))
        except CompensationFailed as exc:
            return Result.failure(
                ErrorCode.PARTIAL_FAILURE,
                "Operation failed halfway and could not be rolled back",
                partial_failure=PartialFailure(
                    succeeded=exc.succeeded,
                    failed=exc.failed,
                    compensated=False,
                    detail=exc.detail,
                ),
            )
        except StoreError as exc:
            logger.warning("Record store unavailable", operation=operation, error=str(exc), **context)
            return Result.failure(ErrorCode.STORE_ERROR, str(exc))
        except Exception as exc:
            logger.exception("Unexpected workflow failure", operation=operation, **context)
            return Result.failure(ErrorCode.STORE_ERROR, f"Unexpected failure: {exc}")

    def _update_order(self, order_id: str, change: Callable) -> Order:
        """Apply `change` to the order, conditional on the status it was read with."""
        with self.store.atomic():
            order = self.store.get(Order, order_id)
            return self.store.conditional_update(Order, order_id, {"status": order.status}, change)

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def get_order(self, order_id: str) -> Result:
        return self._run("get_order", lambda: self.store.get(Order, order_id), order_id=order_id)

    def list_orders(self, status: str | None = None) -> Result:
        def action():
            filters = {"status": _requested_status(status).value} if status else {}
            orders = self.store.scan(Order, **filters)
            return sorted(orders, key=lambda o: as_utc(o.created_at), reverse=True)

        return self._run("list_orders", action, status=status)

    def ship_order(self, order_id: str, carrier: str, tracking_id: str) -> Result:
        def action():
            errors = {}
            if not (carrier or "").strip():
                errors["carrier"] = ["Carrier name is required to ship an order"]
            if not (tracking_id or "").strip():
                errors["tracking_id"] = ["Tracking id is required to ship an order"]
            if errors:
                raise ValidationError(errors)

            now = self.clock()
            order = self._update_order(order_id, lambda o: o.ship(carrier, tracking_id, at=now))
            logger.info("Order shipped", order_id=str(order_id), carrier=order.carrier, tracking_id=order.tracking_id)
            return order

        return self._run("ship_order", action, order_id=order_id)

    def deliver_order(self, order_id: str) -> Result:
        def action():
            now = self.clock()
            order = self._update_order(order_id, lambda o: o.deliver(at=now))
            logger.info("Order delivered", order_id=str(order_id))
            return order

        return self._run("deliver_order", action, order_id=order_id)

    def cancel_order(self, order_id: str, reason: str | None = None) -> Result:
        def action():
            why = (reason or "").strip() or "Cancelled by admin"
            now = self.clock()
            order = self._update_order(order_id, lambda o: o.cancel(why, at=now))
            logger.info("Order cancelled", order_id=str(order_id), reason=why)
            return order

        return self._run("cancel_order", action, order_id=order_id)

    def update_order_status(self, order_id: str, status: str) -> Result:
        def action():
            target = _requested_status(status)
            now = self.clock()
            order = self._update_order(order_id, lambda o: o.update_status(target, at=now))
            logger.info("Order status updated", order_id=str(order_id), status=order.status)
            return order

        return self._run("update_order_status", action, order_id=order_id)

    def get_order_statistics(self) -> Result:
        def action():
            orders = self.store.scan(Order)
            return compute_order_statistics(orders, self.clock(), self.settings.store_timezone)

        return self._run("get_order_statistics", action)

    # -------------------------------------------------------------------
    # Packing
    # -------------------------------------------------------------------
    def open_packing_session(self, order_id: str, admin_email: str) -> Result:
        return self._run(
            "open_packing_session",
            lambda: self.packing.open_session(order_id, admin_email),
            order_id=order_id,
        )

    def get_active_packing_session(self, order_id: str) -> Result:
        return self._run(
            "get_active_packing_session",
            lambda: self.packing.get_active_session(order_id),
            order_id=order_id,
        )

    def list_packing_sessions(self, order_id: str) -> Result:
        return self._run(
            "list_packing_sessions",
            lambda: self.packing.list_sessions(order_id),
            order_id=order_id,
        )

    def get_packing_progress(self, session_id: str) -> Result:
        return self._run("get_packing_progress", lambda: self.packing.progress(session_id), session_id=session_id)

    def update_scan_progress(self, session_id: str, progress: dict) -> Result:
        return self._run(
            "update_scan_progress",
            lambda: self.packing.update_scan_progress(session_id, progress),
            session_id=session_id,
        )

    def scan_item(self, session_id: str, barcode: str) -> Result:
        return self._run("scan_item", lambda: self.packing.scan_item(session_id, barcode), session_id=session_id)

    def complete_packing_session(self, session_id: str) -> Result:
        return self._run(
            "complete_packing_session",
            lambda: self.packing.complete_session(session_id),
            session_id=session_id,
        )

    def cancel_packing_session(self, session_id: str, reason: str = CANCELLED_BY_ADMIN) -> Result:
        return self._run(
            "cancel_packing_session",
            lambda: self.packing.cancel_session(session_id, reason),
            session_id=session_id,
        )

    def expire_stale_sessions(self, older_than_minutes: int | None = None) -> Result:
        def action():
            minutes = self.settings.packing_session_ttl_minutes if older_than_minutes is None else older_than_minutes
            if minutes <= 0:
                raise ValidationError({"older_than_minutes": ["Must be a positive number of minutes"]})
            return self.packing.expire_stale_sessions(minutes)

        return self._run("expire_stale_sessions", action)


def _requested_status(value: str):
    try:
        return parse_status(value)
    except ValueError as exc:
        raise ValidationError({"status": [str(exc)]}) from exc


def _first_message(messages: dict) -> str:
    for field_name, problems in messages.items():
        if problems:
            return f"{field_name}: {problems[0]}"
    return "Invalid input"


def _not_found_message(exc: ObjectNotFoundError, context: dict) -> str:
    if "session_id" in context:
        return f"Packing session {context['session_id']} not found"
    if "order_id" in context:
        return f"Order {context['order_id']} not found"
    return str(exc)
