"""PostgreSQL storage for fund state and events.

Notes
- We avoid logging connection URLs to prevent accidental secret leakage.
- Amounts are stored as NUMERIC(78, 0) so 256-bit values fit.
"""

from .config import PostgresConfig
from .stores import PostgresStores
