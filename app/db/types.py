"""Column types shared by models."""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in local dev and tests)
JSONVariant = JSON().with_variant(JSONB(), "postgresql")
