"""Message store handle."""

from msgstore_gc.db.session import (
    check_connection,
    close_store,
    create_store_engine,
    init_db,
    open_store,
    session_scope,
)

__all__ = [
    "check_connection",
    "close_store",
    "create_store_engine",
    "init_db",
    "open_store",
    "session_scope",
]
