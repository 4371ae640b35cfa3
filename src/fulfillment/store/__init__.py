"""Record store adapter selection."""

from fulfillment.config import get_settings

_store_instance = None


def get_record_store():
    """Return the configured record store (singleton).

    Uses the protean repository adapter by default. Set RECORD_STORE_ADAPTER
    to "flaky" to wrap it with fault injection outside production.
    """
    global _store_instance
    if _store_instance is None:
        settings = get_settings()
        from fulfillment.store.repository_store import RepositoryRecordStore

        if settings.record_store_adapter == "repository":
            _store_instance = RepositoryRecordStore()
        elif settings.record_store_adapter == "flaky":
            if settings.environment == "production":
                raise ValueError("The flaky record store cannot be used in production")
            from fulfillment.store.flaky_store import FlakyRecordStore

            _store_instance = FlakyRecordStore(RepositoryRecordStore())
        else:
            raise ValueError(f"Unknown record store adapter: {settings.record_store_adapter}")
    return _store_instance


def reset_record_store():
    """Reset the record store singleton (useful for testing)."""
    global _store_instance
    _store_instance = None
