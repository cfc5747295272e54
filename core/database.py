"""
core/database.py -- Store client shared by the account and RBAC stores.

One Database owns one SQLAlchemy Engine and the MetaData every table is
registered on. It is constructed by the process entry point (FastAPI
lifespan, CLI, test fixture) and passed explicitly to each store. No module
keeps a global connection.

Lifecycle:
    db = Database(settings.database_url)
    accounts = AccountStore(db)      # registers tables on db.metadata
    rbac = RBACStore(db)
    db.create_all()                  # after every store is constructed
    ...
    db.close()

SQLite connections get two per-connection PRAGMAs:
  journal_mode=WAL  -- readers do not block during writes.
  foreign_keys=ON   -- SQLite ignores FOREIGN KEY clauses unless asked.
                       accounts.role_id and role_actions depend on it.
"""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("rolegate.database")


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine + MetaData pair injected into every store."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.metadata = MetaData()
        kwargs: dict = {}
        if url.startswith("sqlite"):
            # FastAPI runs sync route handlers in a thread pool, so the same
            # connection may be used from several threads.
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # Plain :memory: is per-connection; pin one connection so
                # every store sees the same schema.
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(url, **kwargs)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    def create_all(self) -> None:
        """Create every table registered on the shared metadata (idempotent)."""
        self.metadata.create_all(self.engine)
        logger.info("Schema ready (%d tables)", len(self.metadata.tables))

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
            return True
        except Exception:
            logger.exception("Database ping failed")
            return False

    def close(self) -> None:
        self.engine.dispose()
