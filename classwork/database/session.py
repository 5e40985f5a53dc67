"""
classwork/database/session.py
Database engine, session factory and request-scoped session dependency
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from classwork.core.config import settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine with pool options suited to the backend."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
            **kwargs,
        )
        # SQLite ignores ON DELETE CASCADE unless asked per connection
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(
        url,
        pool_pre_ping=True,           # Detects broken connections
        pool_size=20,
        max_overflow=40,
        pool_timeout=30,              # Wait up to 30s for a connection
        echo=False,
        connect_args={
            "connect_timeout": 10,
            "application_name": "classwork-api"
        },
        **kwargs,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,       # Prevents attribute expiration after commit
)


def get_db():
    """
    FastAPI dependency: provides a database session per request
    Usage in routers:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Session factory for work that outlives the request (background tasks)."""
    return SessionLocal
