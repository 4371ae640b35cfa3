"""Shared BDD fixtures and step definitions for the Fulfillment domain."""

import pytest
from fulfillment.order.order import Order
from protean import current_domain
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def outcome():
    """Container for the latest workflow result and opened sessions."""
    return {"result": None, "sessions": []}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a paid order", target_fixture="order")
def paid_order(place_order):
    return place_order(status="paid")


@given("a pending order", target_fixture="order")
def pending_order(place_order):
    return place_order(status="pending")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('admin "{admin_email}" opens a packing session'))
def open_session(workflow, order, outcome, admin_email):
    result = workflow.open_packing_session(str(order.id), admin_email)
    outcome["result"] = result
    if result.ok:
        outcome["sessions"].append(result.value)


@when("the packing session is completed")
def complete_session(workflow, outcome):
    session = outcome["sessions"][-1]
    outcome["result"] = workflow.complete_packing_session(str(session.id))


@when("the packing session is cancelled")
def cancel_session(workflow, outcome):
    session = outcome["sessions"][-1]
    outcome["result"] = workflow.cancel_packing_session(str(session.id))


@when(parsers.cfparse('item "{barcode}" is scanned'))
def scan_item(workflow, outcome, barcode):
    session = outcome["sessions"][-1]
    outcome["result"] = workflow.scan_item(str(session.id), barcode)


@when(parsers.cfparse('the order is shipped with carrier "{carrier}" and tracking id "{tracking_id}"'))
def ship_order(workflow, order, outcome, clock, carrier, tracking_id):
    clock.advance(hours=2)
    outcome["result"] = workflow.ship_order(str(order.id), carrier, tracking_id)


@when("the order is delivered")
def deliver_order(workflow, order, outcome, clock):
    clock.advance(days=3)
    outcome["result"] = workflow.deliver_order(str(order.id))


@when(parsers.cfparse('the order is cancelled because "{reason}"'))
def cancel_order(workflow, order, outcome, reason):
    outcome["result"] = workflow.cancel_order(str(order.id), reason)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
def _reload(order):
    return current_domain.repository_for(Order).get(order.id)


@then("the operation succeeds")
def operation_succeeds(outcome):
    assert outcome["result"].ok, outcome["result"].error


@then(parsers.cfparse('the operation fails with "{code}"'))
def operation_fails(outcome, code):
    assert outcome["result"].error is not None
    assert outcome["result"].error.code.value == code


@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert _reload(order).status == status


@then(parsers.cfparse('the order was shipped by "{carrier}" with tracking id "{tracking_id}"'))
def order_shipped_by(order, carrier, tracking_id):
    reloaded = _reload(order)
    assert reloaded.carrier == carrier
    assert reloaded.tracking_id == tracking_id


@then("the order timestamps are in order")
def timestamps_in_order(order):
    reloaded = _reload(order)
    assert reloaded.created_at <= reloaded.packed_at <= reloaded.shipped_at <= reloaded.delivered_at


@then("both admins got the same packing session")
def same_session(outcome):
    assert len({str(s.id) for s in outcome["sessions"]}) == 1


@then(parsers.re(r"the order has (?P<count>\d+) packing sessions?"), converters={"count": int})
def order_has_sessions(workflow, order, count):
    assert len(workflow.list_packing_sessions(str(order.id)).value) == count


@then("there is no active packing session")
def no_active_session(workflow, order):
    assert workflow.get_active_packing_session(str(order.id)).value is None


@then("the packing progress is complete")
def progress_complete(workflow, outcome):
    session = outcome["sessions"][-1]
    assert workflow.get_packing_progress(str(session.id)).value["is_complete"] is True
