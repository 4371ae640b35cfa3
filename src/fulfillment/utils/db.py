from protean.domain import Domain
from sqlalchemy import Index, Table, create_engine

from fulfillment.packing.session import PackingSession, PackingSessionStatus

_SQL_PROVIDERS = ("sqlite", "postgresql")

ACTIVE_SESSION_INDEX = "uq_packing_session_active_order"


def active_session_index(table: Table) -> Index:
    """At most one in-progress packing session per order."""
    for index in table.indexes:
        if index.name == ACTIVE_SESSION_INDEX:
            return index

    in_progress = table.c.status == PackingSessionStatus.IN_PROGRESS.value
    return Index(
        ACTIVE_SESSION_INDEX,
        table.c.order_id,
        unique=True,
        postgresql_where=in_progress,
        sqlite_where=in_progress,
    )


def setup_db(domain: Domain):
    """Create tables for every aggregate and entity on a SQL provider."""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _SQL_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])

                for _, aggregate_record in domain.registry.aggregates.items():
                    if aggregate_record.cls.meta_.provider == provider.name:
                        domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

                for _, entity_record in domain.registry.entities.items():
                    if entity_record.cls.meta_.provider == provider.name:
                        domain.repository_for(entity_record.cls)._dao  # noqa: B018

                provider._metadata.create_all(engine)

                sessions = provider._metadata.tables.get(PackingSession.meta_.schema_name)
                if sessions is not None:
                    active_session_index(sessions).create(engine, checkfirst=True)


def drop_db(domain: Domain):
    """Drop tables created by setup_db."""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _SQL_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])
                provider._metadata.drop_all(engine)
