from datetime import UTC, datetime, timedelta

import pytest


@pytest.fixture(scope="session")
def _fulfillment_domain():
    """Initialize the fulfillment domain once per session."""
    from fulfillment.domain import fulfillment

    fulfillment.init()
    return fulfillment


@pytest.fixture(scope="session", autouse=True)
def setup_db(_fulfillment_domain):
    from fulfillment.utils.db import drop_db, setup_db

    setup_db(_fulfillment_domain)

    yield

    drop_db(_fulfillment_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_fulfillment_domain, monkeypatch):
    """Push domain context before each test, cleanup after."""
    from fulfillment.store import reset_record_store
    from fulfillment.workflow import reset_workflow

    monkeypatch.setenv("STORE_TIMEZONE", "Asia/Kolkata")
    reset_record_store()
    reset_workflow()

    ctx = _fulfillment_domain.domain_context()
    ctx.push()

    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    ctx.pop()
    reset_record_store()
    reset_workflow()


class FrozenClock:
    """Settable clock handed to the workflow in tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2026, 3, 14, 10, 0, tzinfo=UTC))


@pytest.fixture()
def store():
    from fulfillment.store.repository_store import RepositoryRecordStore

    return RepositoryRecordStore()


@pytest.fixture()
def workflow(store, clock):
    from fulfillment.config import get_settings
    from fulfillment.workflow.facade import FulfillmentWorkflow

    return FulfillmentWorkflow(store, get_settings(), clock=clock)


def _items(count: int = 2, quantity: int = 1) -> list[dict]:
    return [
        {
            "product_id": f"prod-{i}",
            "name": f"Kalamkari Dupatta {i}",
            "unit_price": 1250.0,
            "quantity": quantity,
            "barcode": f"KK-{i:04d}",
        }
        for i in range(1, count + 1)
    ]


@pytest.fixture()
def place_order():
    """Factory persisting an order the way checkout would hand it over."""
    from fulfillment.order.order import Order
    from fulfillment.order.status import OrderStatus
    from protean import current_domain

    def _place(status="paid", created_at=None, total_amount=None, item_count=2, quantity=1):
        order = Order.create(
            customer_name="Lakshmi Rao",
            customer_phone="+91 98480 12345",
            customer_email="lakshmi@example.com",
            items_data=_items(item_count, quantity),
            total_amount=total_amount,
            status=OrderStatus(status),
            shipping_address={
                "line1": "12 Temple Street",
                "city": "Srikalahasti",
                "state": "Andhra Pradesh",
                "pincode": "517644",
            },
            created_at=created_at or datetime(2026, 3, 14, 9, 0, tzinfo=UTC),
        )
        current_domain.repository_for(Order).add(order)
        return current_domain.repository_for(Order).get(order.id)

    return _place
