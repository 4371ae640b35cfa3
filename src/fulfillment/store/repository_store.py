"""Record store backed by protean repositories.

Works with any protean provider (memory in tests, SQL in deployment).

Within one process every conditional write runs under a re-entrant lock, so
the read, the comparison and the write happen with no other workflow write
in between. Across processes the provider itself arbitrates:

- conditional updates ride protean's optimistic version guard
  (`UPDATE ... WHERE _version = :loaded` on SQL), and a lost race is
  reported as PreconditionFailed against the record as it now stands;
- inserts rely on the unique index `utils.db.setup_db` creates for
  in-progress packing sessions, and a violation is reported as
  AlreadyExists carrying the record that won.
"""

import threading
from contextlib import contextmanager

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain
from sqlalchemy.exc import IntegrityError

from fulfillment.store.port import AlreadyExists, PreconditionFailed, RecordStore, StoreError

logger = structlog.get_logger(__name__)

_WRITE_LOCK = threading.RLock()

# Protean query sets return 100 records unless told otherwise
DEFAULT_PAGE_SIZE = 100


class _UniqueViolation(Exception):
    pass


def _is_unique_violation(exc: BaseException) -> bool:
    """True when `exc` or anything it was raised from is an IntegrityError."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, IntegrityError):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False


@contextmanager
def _translated(operation: str, aggregate_cls):
    """Turn provider failures into StoreError, leaving domain errors alone."""
    try:
        yield
    except (ObjectNotFoundError, StoreError, ExpectedVersionError, _UniqueViolation):
        raise
    except Exception as exc:
        if _is_unique_violation(exc):
            raise _UniqueViolation(str(exc)) from exc
        logger.error(
            "Record store operation failed",
            operation=operation,
            aggregate=aggregate_cls.__name__,
            error=str(exc),
        )
        raise StoreError(f"{operation} on {aggregate_cls.__name__} failed: {exc}") from exc


class RepositoryRecordStore(RecordStore):
    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        self.page_size = page_size

    @contextmanager
    def atomic(self):
        with _WRITE_LOCK:
            yield

    def get(self, aggregate_cls, identifier: str):
        with _translated("get", aggregate_cls):
            return current_domain.repository_for(aggregate_cls).get(str(identifier))

    def scan(self, aggregate_cls, **filters) -> list:
        records = []
        offset = 0
        with _translated("scan", aggregate_cls):
            query = current_domain.repository_for(aggregate_cls)._dao.query.order_by("id")
            if filters:
                query = query.filter(**filters)
            while True:
                page = query.limit(self.page_size).offset(offset).all().items
                records.extend(page)
                if len(page) < self.page_size:
                    break
                offset += self.page_size
        return records

    def insert_if_absent(self, aggregate_cls, unique_key: dict, record):
        with self.atomic():
            existing = self.scan(aggregate_cls, **unique_key)
            if existing:
                raise AlreadyExists(existing[0])
            try:
                with _translated("insert", aggregate_cls):
                    self._persist(aggregate_cls, record)
            except _UniqueViolation as exc:
                winner = self.scan(aggregate_cls, **unique_key)
                if not winner:
                    raise StoreError(f"insert on {aggregate_cls.__name__} failed: {exc}") from exc
                logger.info(
                    "Insert lost to a concurrent writer",
                    aggregate=aggregate_cls.__name__,
                    existing_id=str(winner[0].id),
                )
                raise AlreadyExists(winner[0]) from exc
            return record

    def conditional_update(self, aggregate_cls, identifier: str, expected: dict, change):
        with self.atomic():
            record = self.get(aggregate_cls, identifier)
            if any(getattr(record, field, None) != value for field, value in expected.items()):
                raise PreconditionFailed(record, expected)

            change(record)

            try:
                with _translated("update", aggregate_cls):
                    self._persist(aggregate_cls, record)
            except _UniqueViolation as exc:
                raise StoreError(f"update on {aggregate_cls.__name__} failed: {exc}") from exc
            except ExpectedVersionError as exc:
                current = self.get(aggregate_cls, identifier)
                logger.info(
                    "Conditional update lost to a concurrent writer",
                    aggregate=aggregate_cls.__name__,
                    identifier=str(identifier),
                )
                raise PreconditionFailed(current, expected) from exc
            return record

    def _persist(self, aggregate_cls, record) -> None:
        current_domain.repository_for(aggregate_cls).add(record)
