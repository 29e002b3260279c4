"""Engine construction for the gator database.

Any SQLAlchemy URL works (PostgreSQL in production, SQLite locally).
SQLite connections get foreign key enforcement switched on so that
ON DELETE CASCADE behaves the same as on PostgreSQL.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from ..logging import get_logger, redact_url

logger = get_logger(__name__)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Turn on PRAGMA foreign_keys for every new SQLite connection.

    No-op for other backends. Safe to call more than once.
    """
    if engine.dialect.name != "sqlite":
        return
    if not event.contains(engine, "connect", _set_sqlite_pragma):
        event.listen(engine, "connect", _set_sqlite_pragma)


def create_database_engine(db_url: str, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine for the configured database.

    Args:
        db_url: SQLAlchemy database URL
        echo: Log emitted SQL

    Returns:
        SQLAlchemy Engine
    """
    if db_url.startswith("sqlite"):
        kwargs = {'connect_args': {'check_same_thread': False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so scheduler worker threads see the same database
            kwargs['poolclass'] = StaticPool
        engine = create_engine(db_url, echo=echo, **kwargs)
    else:
        engine = create_engine(db_url, echo=echo, pool_pre_ping=True)

    enable_sqlite_foreign_keys(engine)
    logger.info(f"Database engine created for {redact_url(db_url)}")
    return engine
