"""Application tests for store failures during two-record packing changes."""

import pytest
from fulfillment.config import get_settings
from fulfillment.order.order import Order
from fulfillment.order.status import OrderStatus
from fulfillment.packing.session import PackingSession, PackingSessionStatus
from fulfillment.store.flaky_store import FlakyRecordStore
from fulfillment.store.repository_store import RepositoryRecordStore
from fulfillment.workflow.errors import ErrorCode
from fulfillment.workflow.facade import FulfillmentWorkflow
from protean import current_domain

ADMIN = "packer@kailash.example"


@pytest.fixture()
def flaky():
    return FlakyRecordStore(RepositoryRecordStore())


@pytest.fixture()
def flaky_workflow(flaky, clock):
    return FulfillmentWorkflow(flaky, get_settings(), clock=clock)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _session(session_id):
    return current_domain.repository_for(PackingSession).get(session_id)


class TestOpenSessionFailures:
    def test_order_write_failure_is_rolled_back(self, flaky_workflow, flaky, place_order):
        order = place_order()
        flaky.configure("conditional_update", Order)

        result = flaky_workflow.open_packing_session(str(order.id), ADMIN)

        assert result.error.code == ErrorCode.STORE_ERROR
        assert result.error.retryable
        assert _order(order.id).status == OrderStatus.PAID.value
        assert flaky_workflow.get_active_packing_session(str(order.id)).value is None

    def test_retry_after_rollback_succeeds(self, flaky_workflow, flaky, place_order):
        order = place_order()
        flaky.configure("conditional_update", Order)
        flaky_workflow.open_packing_session(str(order.id), ADMIN)

        result = flaky_workflow.open_packing_session(str(order.id), ADMIN)

        assert result.ok
        assert _order(order.id).status == OrderStatus.IN_PACKING.value

    def test_failed_rollback_reports_partial_failure(self, flaky_workflow, flaky, place_order):
        order = place_order()
        flaky.configure("conditional_update", Order)
        flaky.configure("conditional_update", PackingSession)

        result = flaky_workflow.open_packing_session(str(order.id), ADMIN)

        assert result.error.code == ErrorCode.PARTIAL_FAILURE
        assert not result.error.retryable
        partial = result.error.partial_failure
        assert partial.compensated is False
        assert partial.succeeded[0].startswith("packing_session:")
        assert partial.failed == [f"order:{order.id}"]


class TestCompleteSessionFailures:
    def test_order_write_failure_reopens_session(self, flaky_workflow, flaky, place_order):
        order = place_order()
        session_id = str(flaky_workflow.open_packing_session(str(order.id), ADMIN).value.id)
        flaky.configure("conditional_update", Order)

        result = flaky_workflow.complete_packing_session(session_id)

        assert result.error.code == ErrorCode.STORE_ERROR
        session = _session(session_id)
        assert session.status == PackingSessionStatus.IN_PROGRESS.value
        assert session.completed_at is None
        assert _order(order.id).status == OrderStatus.IN_PACKING.value
        assert _order(order.id).packed_at is None

        assert flaky_workflow.complete_packing_session(session_id).ok

    def test_failed_rollback_reports_partial_failure(self, flaky_workflow, flaky, place_order):
        order = place_order()
        session_id = str(flaky_workflow.open_packing_session(str(order.id), ADMIN).value.id)
        flaky.configure("conditional_update", Order)
        flaky.configure("conditional_update", PackingSession, after=1)

        result = flaky_workflow.complete_packing_session(session_id)

        assert result.error.code == ErrorCode.PARTIAL_FAILURE
        assert result.error.partial_failure.succeeded == [f"packing_session:{session_id}"]
        assert _session(session_id).status == PackingSessionStatus.COMPLETED.value
        assert _order(order.id).status == OrderStatus.IN_PACKING.value


class TestCancelSessionFailures:
    def test_order_write_failure_reopens_session(self, flaky_workflow, flaky, place_order):
        order = place_order()
        session_id = str(flaky_workflow.open_packing_session(str(order.id), ADMIN).value.id)
        flaky.configure("conditional_update", Order)

        result = flaky_workflow.cancel_packing_session(session_id)

        assert result.error.code == ErrorCode.STORE_ERROR
        assert _session(session_id).is_active
        assert _order(order.id).status == OrderStatus.IN_PACKING.value


class TestExpireSessionFailures:
    @pytest.fixture()
    def two_stale_sessions(self, flaky_workflow, place_order, clock):
        sessions = {}
        for _ in range(2):
            order = place_order()
            session = flaky_workflow.open_packing_session(str(order.id), ADMIN).value
            sessions[str(session.id)] = str(order.id)
        clock.advance(hours=2)
        return sessions

    def test_failed_rollback_does_not_stop_the_sweep(self, flaky_workflow, flaky, two_stale_sessions):
        flaky.configure("conditional_update", Order)
        flaky.configure("conditional_update", PackingSession, after=1)

        result = flaky_workflow.expire_stale_sessions(60)

        assert result.ok
        report = result.value
        [expired_id] = report.expired
        [failure] = report.failed
        assert {expired_id, failure.session_id} == set(two_stale_sessions)
        assert failure.order_id == two_stale_sessions[failure.session_id]
        assert failure.partial_failure

        assert _session(failure.session_id).status == PackingSessionStatus.CANCELLED.value
        assert _order(failure.order_id).status == OrderStatus.IN_PACKING.value
        assert _session(expired_id).cancellation_reason == "expired"
        assert _order(two_stale_sessions[expired_id]).status == OrderStatus.PAID.value

    def test_rolled_back_session_is_reported_and_left_active(self, flaky_workflow, flaky, two_stale_sessions):
        flaky.configure("conditional_update", Order)

        report = flaky_workflow.expire_stale_sessions(60).value

        assert len(report.expired) == 1
        [failure] = report.failed
        assert not failure.partial_failure
        assert "Injected failure" in failure.error
        assert _session(failure.session_id).is_active
        assert _order(failure.order_id).status == OrderStatus.IN_PACKING.value


class TestReadFailures:
    def test_store_unavailable_on_read(self, flaky_workflow, flaky, place_order):
        order = place_order()
        flaky.configure("get", Order)
        result = flaky_workflow.get_order(str(order.id))
        assert result.error.code == ErrorCode.STORE_ERROR

    def test_unexpected_exception_becomes_store_error(self, clock):
        class _BrokenStore(RepositoryRecordStore):
            def scan(self, aggregate_cls, **filters):
                raise RuntimeError("disk on fire")

        workflow = FulfillmentWorkflow(_BrokenStore(), get_settings(), clock=clock)
        result = workflow.get_order_statistics()
        assert result.error.code == ErrorCode.STORE_ERROR
        assert "disk on fire" in result.error.message

    def test_corrupt_stored_progress_is_not_a_validation_error(self, workflow, place_order):
        order = place_order()
        session = workflow.open_packing_session(str(order.id), ADMIN).value
        repo = current_domain.repository_for(PackingSession)
        stored = repo.get(str(session.id))
        stored.scan_progress = "{not json"
        repo.add(stored)

        result = workflow.get_packing_progress(str(session.id))

        assert result.error.code == ErrorCode.STORE_ERROR
