"""
Database module.
Contains database connection, models, and repository implementations.
"""

from genqueue.db.connection import (
    close_db,
    create_session_factory,
    create_tables,
    get_engine,
    get_test_engine,
    init_db,
    session_scope,
)
from genqueue.db.models import Base, QueueJob

__all__ = [
    "get_engine",
    "get_test_engine",
    "create_session_factory",
    "create_tables",
    "init_db",
    "close_db",
    "session_scope",
    "QueueJob",
    "Base",
]
