# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure.

This package provides SQLAlchemy async connections, the ORM models of the
pair-matching tables, Alembic migrations and the YAML catalog seeder.

Example:
    from src.infrastructure.database import init_database, get_sessionmaker

    await init_database(settings)
    store = SqlCatalogStore(get_sessionmaker())
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_engine,
    create_sessionmaker,
    create_tables,
    get_engine,
    get_sessionmaker,
    init_database,
)

__all__ = [
    "DatabaseError",
    "check_database_connection",
    "close_database",
    "create_engine",
    "create_sessionmaker",
    "create_tables",
    "get_engine",
    "get_sessionmaker",
    "init_database",
]
