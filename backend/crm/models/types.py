"""Column types shared across models.

PostgreSQL gets native JSONB; other backends (SQLite in tests) fall back to
generic JSON.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

JSONType = JSON().with_variant(JSONB(), "postgresql")
