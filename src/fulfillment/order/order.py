"""Order aggregate — a customer purchase tracked through fulfillment.

Orders are created at checkout (outside this context) in PENDING or PAID and
are only ever mutated through the workflow facade. Every mutating method runs
the status machine first; timestamps are clamped so that
created_at <= packed_at <= shipped_at <= delivered_at always holds.
"""

from datetime import datetime

from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from fulfillment.domain import fulfillment
from fulfillment.order.status import (
    InvalidTransition,
    OrderStatus,
    TransitionCause,
    validate_transition,
)
from fulfillment.shared.clock import not_before, utc_now


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured at checkout."""

    line1 = String(max_length=255)
    line2 = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    pincode = String(max_length=20)
    landmark = String(max_length=255)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class OrderItem:
    """A single ordered line. `str(item.id)` keys the packing scan progress."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    unit_price = Float(default=0.0, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    image = String(max_length=500)
    barcode = String(max_length=100)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    customer_name = String(required=True, max_length=200)
    customer_phone = String(max_length=20)
    customer_email = String(max_length=254)
    shipping_address = ValueObject(ShippingAddress)
    items = HasMany(OrderItem)
    total_amount = Float(default=0.0)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    created_at = DateTime()
    packed_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    carrier = String(max_length=100)
    tracking_id = String(max_length=100)
    cancellation_reason = String(max_length=500)
    cancelled_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_name: str,
        items_data: list[dict],
        total_amount: float | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        customer_phone: str | None = None,
        customer_email: str | None = None,
        shipping_address: dict | None = None,
        created_at: datetime | None = None,
    ):
        """Build an order as checkout hands it over (PENDING or PAID)."""
        if status not in (OrderStatus.PENDING, OrderStatus.PAID):
            raise ValidationError({"status": ["New orders must be pending or paid"]})
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        if total_amount is None:
            total_amount = round(
                sum(float(i.get("unit_price") or 0) * int(i.get("quantity") or 0) for i in items_data),
                2,
            )

        now = created_at or utc_now()
        order = cls(
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_email=customer_email,
            shipping_address=ShippingAddress(**shipping_address) if shipping_address else None,
            total_amount=total_amount,
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(OrderItem(**item_data))
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def find_item(self, item_id: str):
        return next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)

    def find_item_by_barcode(self, barcode: str):
        """Match a scanned code against item barcodes, falling back to product ids."""
        code = (barcode or "").strip()
        if not code:
            return None
        return next(
            (i for i in (self.items or []) if (i.barcode or str(i.product_id)) == code),
            None,
        )

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def _move_to(self, target: OrderStatus, via: TransitionCause, at: datetime) -> None:
        validate_transition(self.order_status, target, via)
        self.status = target.value
        self.updated_at = at

    def record_payment(self, at: datetime | None = None) -> None:
        """Payment was captured elsewhere; the order becomes packable."""
        self._move_to(OrderStatus.PAID, TransitionCause.STATUS_UPDATE, at or utc_now())

    def start_packing(self, at: datetime | None = None) -> None:
        self._move_to(OrderStatus.IN_PACKING, TransitionCause.PACKING_STARTED, at or utc_now())

    def revert_packing(self, at: datetime | None = None) -> None:
        """Packing session was abandoned; back to PAID."""
        self._move_to(OrderStatus.PAID, TransitionCause.PACKING_CANCELLED, at or utc_now())

    def mark_packed(self, packed_at: datetime) -> None:
        validate_transition(self.order_status, OrderStatus.PACKED, TransitionCause.PACKING_COMPLETED)
        packed_at = not_before(packed_at, self.created_at)
        self.status = OrderStatus.PACKED.value
        self.packed_at = packed_at
        self.updated_at = packed_at

    def ship(self, carrier: str, tracking_id: str, at: datetime | None = None) -> None:
        validate_transition(self.order_status, OrderStatus.SHIPPED, TransitionCause.SHIPMENT)

        errors = {}
        if not (carrier or "").strip():
            errors["carrier"] = ["Carrier name is required to ship an order"]
        if not (tracking_id or "").strip():
            errors["tracking_id"] = ["Tracking id is required to ship an order"]
        if errors:
            raise ValidationError(errors)

        shipped_at = not_before(at or utc_now(), self.packed_at)
        self.status = OrderStatus.SHIPPED.value
        self.carrier = carrier.strip()
        self.tracking_id = tracking_id.strip()
        self.shipped_at = shipped_at
        self.updated_at = shipped_at

    def deliver(self, at: datetime | None = None, via: TransitionCause = TransitionCause.DELIVERY) -> None:
        validate_transition(self.order_status, OrderStatus.DELIVERED, via)
        if self.shipped_at is None:
            raise InvalidTransition(self.order_status, OrderStatus.DELIVERED, "order has no shipped_at")

        delivered_at = not_before(at or utc_now(), self.shipped_at)
        self.status = OrderStatus.DELIVERED.value
        self.delivered_at = delivered_at
        self.updated_at = delivered_at

    def cancel(
        self,
        reason: str,
        at: datetime | None = None,
        via: TransitionCause = TransitionCause.CANCELLATION,
    ) -> None:
        validate_transition(self.order_status, OrderStatus.CANCELLED, via)
        cancelled_at = not_before(at or utc_now(), self.created_at)
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_at = cancelled_at
        self.updated_at = cancelled_at

    def update_status(self, target: OrderStatus, at: datetime | None = None) -> None:
        """Generic setter used by customer self-service and admin tools.

        Only edges the status machine marks as directly settable go through;
        packing and shipping edges must use their dedicated operations.
        """
        if target == OrderStatus.PAID:
            self.record_payment(at)
        elif target == OrderStatus.DELIVERED:
            self.deliver(at, via=TransitionCause.STATUS_UPDATE)
        elif target == OrderStatus.CANCELLED:
            self.cancel("Cancelled via status update", at, via=TransitionCause.STATUS_UPDATE)
        else:
            # Raises: no other edge accepts a plain status update
            validate_transition(self.order_status, target, TransitionCause.STATUS_UPDATE)
