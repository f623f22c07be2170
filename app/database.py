"""
Jovika Kito v2.0 — Database Engine
SQLAlchemy setup for the durable student records.
Works with SQLite (dev) and PostgreSQL (prod).
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from app.config import DATABASE_URL


# ─── Engine Setup ────────────────────────────────────────────────────────────

def make_engine(url: str):
    """Build an engine with the pool settings each backend needs."""
    if url.startswith("sqlite"):
        # SQLite needs special handling for concurrent access
        eng = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )

        # Enable WAL mode for better concurrent read performance
        @event.listens_for(eng, "connect")
        def _set_sqlite_pragma(dbapi_connection, _connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return eng

    # PostgreSQL — standard pooled connection
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Test connections before use
        echo=False,
    )


engine = make_engine(DATABASE_URL)


# ─── Session Factory ─────────────────────────────────────────────────────────

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


# ─── Base Class ──────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# ─── Schema ──────────────────────────────────────────────────────────────────

def init_db(bind=None):
    """Create all tables. Called once at startup."""
    # Models must be imported so their tables register on Base.metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
