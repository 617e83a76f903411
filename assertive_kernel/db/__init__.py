"""Database layer - engine, session scope and declarative base."""

from assertive_kernel.db.base import Base
from assertive_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "create_engine_from_url",
    "create_tables",
    "drop_tables",
    "make_session_factory",
    "session_scope",
]
