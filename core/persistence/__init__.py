"""Optional persistence interfaces.

These protocols define the persistence boundary of the fund engine.
Implementations can be backed by PostgreSQL (recommended) or other stores.
"""

from .interfaces import FundEventStore, FundStateStore
