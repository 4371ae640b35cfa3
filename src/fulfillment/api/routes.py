"""FastAPI routes for the Fulfillment domain.

Every route delegates to the workflow facade. Failed results become JSON
error bodies of the form {"error": {"code", "message", "retryable",
"partial_failure"}} with a status code chosen by error code.
"""

from dataclasses import asdict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from fulfillment.api.schemas import (
    CancelOrderRequest,
    CancelPackingSessionRequest,
    ExpireSessionsRequest,
    ExpireSessionsResponse,
    OpenPackingSessionRequest,
    OrderResponse,
    OrderStatisticsResponse,
    PackingProgressResponse,
    PackingSessionResponse,
    ScanItemRequest,
    ShipOrderRequest,
    UpdateOrderStatusRequest,
    UpdateScanProgressRequest,
)
from fulfillment.packing.session import CANCELLED_BY_ADMIN
from fulfillment.workflow import get_workflow
from fulfillment.workflow.errors import ErrorCode, WorkflowError

_HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.VALIDATION: 422,
    ErrorCode.STORE_ERROR: 503,
    ErrorCode.PARTIAL_FAILURE: 500,
}


def error_response(error: WorkflowError) -> JSONResponse:
    body = {
        "code": error.code.value,
        "message": error.message,
        "retryable": error.retryable,
        "partial_failure": asdict(error.partial_failure) if error.partial_failure else None,
    }
    if error.details:
        body["details"] = error.details
    return JSONResponse(status_code=_HTTP_STATUS[error.code], content={"error": body})


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(status: str | None = None):
    """List orders, newest first, optionally filtered by status."""
    result = get_workflow().list_orders(status)
    if not result.ok:
        return error_response(result.error)
    return [OrderResponse.from_order(o) for o in result.value]


@order_router.get("/statistics", response_model=OrderStatisticsResponse)
async def get_order_statistics():
    """Dashboard snapshot: counts by status and today's volume."""
    result = get_workflow().get_order_statistics()
    if not result.ok:
        return error_response(result.error)
    stats = asdict(result.value)
    stats["today_revenue"] = float(stats["today_revenue"])
    return OrderStatisticsResponse(**stats)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str):
    result = get_workflow().get_order(order_id)
    if not result.ok:
        return error_response(result.error)
    return OrderResponse.from_order(result.value)


@order_router.put("/{order_id}/ship", response_model=OrderResponse)
async def ship_order(order_id: str, body: ShipOrderRequest):
    """Hand a packed order to the carrier."""
    result = get_workflow().ship_order(order_id, body.carrier, body.tracking_id)
    if not result.ok:
        return error_response(result.error)
    return OrderResponse.from_order(result.value)


@order_router.put("/{order_id}/deliver", response_model=OrderResponse)
async def deliver_order(order_id: str):
    result = get_workflow().deliver_order(order_id)
    if not result.ok:
        return error_response(result.error)
    return OrderResponse.from_order(result.value)


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest | None = None):
    """Cancel a pending or paid order."""
    result = get_workflow().cancel_order(order_id, body.reason if body else None)
    if not result.ok:
        return error_response(result.error)
    return OrderResponse.from_order(result.value)


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest):
    """Generic status change, limited to the directly settable transitions."""
    result = get_workflow().update_order_status(order_id, body.status)
    if not result.ok:
        return error_response(result.error)
    return OrderResponse.from_order(result.value)


@order_router.post("/{order_id}/packing-sessions", response_model=PackingSessionResponse)
async def open_packing_session(order_id: str, body: OpenPackingSessionRequest):
    """Open a packing session, or return the one already in progress."""
    result = get_workflow().open_packing_session(order_id, body.admin_email)
    if not result.ok:
        return error_response(result.error)
    return PackingSessionResponse.from_session(result.value)


@order_router.get("/{order_id}/packing-sessions", response_model=list[PackingSessionResponse])
async def list_packing_sessions(order_id: str):
    result = get_workflow().list_packing_sessions(order_id)
    if not result.ok:
        return error_response(result.error)
    return [PackingSessionResponse.from_session(s) for s in result.value]


@order_router.get("/{order_id}/packing-sessions/active", response_model=PackingSessionResponse | None)
async def get_active_packing_session(order_id: str):
    result = get_workflow().get_active_packing_session(order_id)
    if not result.ok:
        return error_response(result.error)
    return PackingSessionResponse.from_session(result.value) if result.value else None


# ---------------------------------------------------------------------------
# Packing Session Router
# ---------------------------------------------------------------------------
packing_router = APIRouter(prefix="/packing-sessions", tags=["packing-sessions"])


@packing_router.post("/expire", response_model=ExpireSessionsResponse)
async def expire_stale_sessions(body: ExpireSessionsRequest | None = None):
    """Cancel in-progress sessions older than the threshold (maintenance)."""
    result = get_workflow().expire_stale_sessions(body.older_than_minutes if body else None)
    if not result.ok:
        return error_response(result.error)
    return ExpireSessionsResponse.from_report(result.value)


@packing_router.put("/{session_id}/progress", response_model=PackingSessionResponse)
async def update_scan_progress(session_id: str, body: UpdateScanProgressRequest):
    result = get_workflow().update_scan_progress(session_id, body.scan_progress)
    if not result.ok:
        return error_response(result.error)
    return PackingSessionResponse.from_session(result.value)


@packing_router.get("/{session_id}/progress", response_model=PackingProgressResponse)
async def get_packing_progress(session_id: str):
    result = get_workflow().get_packing_progress(session_id)
    if not result.ok:
        return error_response(result.error)
    return PackingProgressResponse(**result.value)


@packing_router.post("/{session_id}/scans", response_model=PackingSessionResponse)
async def scan_item(session_id: str, body: ScanItemRequest):
    """Count one unit of the scanned item."""
    result = get_workflow().scan_item(session_id, body.barcode)
    if not result.ok:
        return error_response(result.error)
    return PackingSessionResponse.from_session(result.value)


@packing_router.put("/{session_id}/complete", response_model=PackingSessionResponse)
async def complete_packing_session(session_id: str):
    result = get_workflow().complete_packing_session(session_id)
    if not result.ok:
        return error_response(result.error)
    return PackingSessionResponse.from_session(result.value)


@packing_router.put("/{session_id}/cancel", response_model=PackingSessionResponse)
async def cancel_packing_session(session_id: str, body: CancelPackingSessionRequest | None = None):
    reason = (body.reason if body else None) or CANCELLED_BY_ADMIN
    result = get_workflow().cancel_packing_session(session_id, reason)
    if not result.ok:
        return error_response(result.error)
    return PackingSessionResponse.from_session(result.value)
