"""Pydantic API schemas for the Fulfillment domain.

These are the external API contracts. Responses are built from aggregates
with the `from_*` constructors so the domain objects never leak directly.
"""

from dataclasses import asdict
from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class ShipOrderRequest(BaseModel):
    carrier: str
    tracking_id: str


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: str


class OpenPackingSessionRequest(BaseModel):
    admin_email: str


class UpdateScanProgressRequest(BaseModel):
    scan_progress: dict[str, int]


class ScanItemRequest(BaseModel):
    barcode: str


class CancelPackingSessionRequest(BaseModel):
    reason: str | None = None


class ExpireSessionsRequest(BaseModel):
    older_than_minutes: int | None = Field(default=None, gt=0)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class ShippingAddressResponse(BaseModel):
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    landmark: str | None = None


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    name: str
    unit_price: float
    quantity: int
    image: str | None = None
    barcode: str | None = None


class OrderResponse(BaseModel):
    id: str
    status: str
    customer_name: str
    customer_phone: str | None = None
    customer_email: str | None = None
    shipping_address: ShippingAddressResponse | None = None
    items: list[OrderItemResponse]
    total_amount: float
    created_at: datetime | None = None
    packed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    carrier: str | None = None
    tracking_id: str | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        address = order.shipping_address
        return cls(
            id=str(order.id),
            status=order.status,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            customer_email=order.customer_email,
            shipping_address=(
                ShippingAddressResponse(
                    line1=address.line1,
                    line2=address.line2,
                    city=address.city,
                    state=address.state,
                    pincode=address.pincode,
                    landmark=address.landmark,
                )
                if address
                else None
            ),
            items=[
                OrderItemResponse(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    name=item.name,
                    unit_price=item.unit_price or 0.0,
                    quantity=item.quantity,
                    image=item.image,
                    barcode=item.barcode,
                )
                for item in order.items or []
            ],
            total_amount=order.total_amount or 0.0,
            created_at=order.created_at,
            packed_at=order.packed_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            carrier=order.carrier,
            tracking_id=order.tracking_id,
            cancellation_reason=order.cancellation_reason,
            cancelled_at=order.cancelled_at,
        )


class PackingSessionResponse(BaseModel):
    id: str
    order_id: str
    admin_email: str
    status: str
    scan_progress: dict[str, int]
    started_at: datetime | None = None
    completed_at: datetime | None = None
    packing_duration_minutes: int | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    @classmethod
    def from_session(cls, session) -> "PackingSessionResponse":
        return cls(
            id=str(session.id),
            order_id=str(session.order_id),
            admin_email=session.admin_email,
            status=session.status,
            scan_progress=session.progress_counts(),
            started_at=session.started_at,
            completed_at=session.completed_at,
            packing_duration_minutes=session.packing_duration_minutes,
            cancelled_at=session.cancelled_at,
            cancellation_reason=session.cancellation_reason,
        )


class ItemProgressResponse(BaseModel):
    item_id: str
    name: str
    barcode: str
    scanned: int
    required: int


class PackingProgressResponse(BaseModel):
    session_id: str
    items: list[ItemProgressResponse]
    scanned_total: int
    required_total: int
    is_complete: bool


class OrderStatisticsResponse(BaseModel):
    total: int
    today_count: int
    today_revenue: float
    pending: int
    paid: int
    in_packing: int
    packed: int
    shipped: int
    delivered: int
    cancelled: int


class ExpireFailureResponse(BaseModel):
    session_id: str
    order_id: str
    error: str
    partial_failure: bool


class ExpireSessionsResponse(BaseModel):
    expired_count: int
    session_ids: list[str]
    failed_count: int = 0
    failures: list[ExpireFailureResponse] = []

    @classmethod
    def from_report(cls, report) -> "ExpireSessionsResponse":
        return cls(
            expired_count=len(report.expired),
            session_ids=report.expired,
            failed_count=len(report.failed),
            failures=[ExpireFailureResponse(**asdict(f)) for f in report.failed],
        )
