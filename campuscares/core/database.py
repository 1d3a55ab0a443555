"""Database configuration and session management for SQLite.

The engine's SQL store relies on these connection-level settings:

    - **WAL (Write-Ahead Logging)**: readers keep working while a signup
      transaction holds the write lock on an opportunity.

    - **Foreign Keys**: disabled by default in SQLite. Enabled so a
      registration can never point at a deleted opportunity.

    - **check_same_thread=False**: FastAPI may hand a session to a different
      thread than the one that opened the connection.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from campuscares.core.config import settings

connect_args = (
    {"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {}
)

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


def enable_sqlite_pragmas(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if engine.dialect.name == "sqlite":
    sa_event.listen(engine, "connect", enable_sqlite_pragmas)


def create_db_and_tables():
    """Create all database tables."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
