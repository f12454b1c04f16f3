"""Storage implementations.

Concrete implementations of the persistence interfaces (PostgreSQL via
SQLAlchemy), kept apart from the engine so it stays storage-agnostic.
"""

from .noop_stores import NoopFundEventStore, NoopFundStateStore

from .postgres import PostgresConfig, PostgresStores
