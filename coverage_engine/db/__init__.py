"""
Database module for the Coverage Engine.

Exports database connection utilities.
"""

from coverage_engine.db.connection import (
    check_db_connection,
    close_db_connection,
    create_all,
    create_session_maker,
    get_engine,
    get_session,
    get_session_maker,
)

__all__ = [
    "get_engine",
    "get_session_maker",
    "create_session_maker",
    "get_session",
    "create_all",
    "close_db_connection",
    "check_db_connection",
]
