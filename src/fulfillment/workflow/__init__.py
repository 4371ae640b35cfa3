"""Access to the process-wide fulfillment workflow."""

from fulfillment.config import get_settings

_workflow_instance = None


def get_workflow():
    """Return the fulfillment workflow wired to the configured record store (singleton)."""
    global _workflow_instance
    if _workflow_instance is None:
        from fulfillment.store import get_record_store
        from fulfillment.workflow.facade import FulfillmentWorkflow

        _workflow_instance = FulfillmentWorkflow(get_record_store(), get_settings())
    return _workflow_instance


def reset_workflow():
    """Reset the workflow singleton (useful for testing)."""
    global _workflow_instance
    _workflow_instance = None
