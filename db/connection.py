"""Database engine, session management, and FastAPI dependency."""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from db.models import Base, Clients

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

REQUIRED_TABLES = ("clients", "rule_types", "rules", "rule_versions")

GLOBAL_CLIENT_NAME = "Global"


def get_resolved_sqlite_path() -> Path | None:
    """Return absolute path to SQLite file if using SQLite, else None."""
    db = get_settings().database
    if db._use_postgres():
        return None
    return db._resolved_sqlite_path()


def get_engine() -> Engine:
    """Get or create the shared database engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        url = settings.database.url
        opts: dict = {"echo": settings.debug}

        if settings.database._use_postgres():
            opts.update(
                pool_size=settings.database.pool_size,
                pool_timeout=settings.database.pool_timeout,
                pool_recycle=settings.database.pool_recycle,
                pool_pre_ping=True,
            )

        _engine = create_engine(url, **opts)

        if not settings.database._use_postgres():

            @event.listens_for(_engine, "connect")
            def _set_sqlite_pragma(dbapi_conn, connection_record):
                cur = dbapi_conn.cursor()
                cur.execute("PRAGMA foreign_keys=ON")
                cur.execute("PRAGMA journal_mode=WAL")
                cur.execute("PRAGMA busy_timeout=30000")
                cur.execute("PRAGMA synchronous=NORMAL")
                cur.close()

    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Get or create the session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context-managed session with commit/rollback."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def verify_required_tables(engine: Engine | None = None) -> list[str]:
    """Return list of required tables that are missing."""
    if engine is None:
        engine = get_engine()
    existing = set(inspect(engine).get_table_names())
    return [t for t in REQUIRED_TABLES if t not in existing]


def seed_global_client(session: Session) -> None:
    """Ensure the global pseudo-client exists. Idempotent."""
    project_id: int = get_settings().global_project_id
    found = session.scalar(select(Clients).where(Clients.project_id == project_id))
    if found is None:
        session.add(Clients(client_name=GLOBAL_CLIENT_NAME, project_id=project_id))
        session.flush()
        logger.info("Seeded global client (project_id=%s)", project_id)


def init_database(drop_existing: bool = False) -> None:
    """Create all tables and seed the global client. Idempotent unless drop_existing."""
    engine = get_engine()
    if drop_existing:
        Base.metadata.drop_all(engine)
        logger.warning("Dropped all tables")

    missing_before = verify_required_tables(engine)
    Base.metadata.create_all(engine)
    still_missing = verify_required_tables(engine)

    if still_missing:
        db_path = get_resolved_sqlite_path()
        hint = f" (file: {db_path})" if db_path else ""
        raise RuntimeError(f"Schema init failed: missing tables {still_missing}{hint}")
    if missing_before:
        logger.info("Schema init: created tables %s", missing_before)
    else:
        logger.info("Schema init: all tables present")

    with get_session() as session:
        seed_global_client(session)


def reset_engine() -> None:
    """For testing: clear cached engine and session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
