"""
Database session management. SQLAlchemy 2.x style.
"""

from collections.abc import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings


def build_engine(url: str, echo: bool = False, connect_timeout: int = 10) -> Engine:
    """Create an engine for PostgreSQL (production) or SQLite (local dev, tests).

    SQLite gets pysqlite's transaction handling disabled and an explicit BEGIN
    emitted, so SAVEPOINTs used by the ledger behave like they do on Postgres.
    """
    if url.startswith("sqlite"):
        # In-memory databases live on one connection; share it across threads
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        sqlite_engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else None,
        )

        @event.listens_for(sqlite_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(sqlite_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return sqlite_engine

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=echo,
        connect_args={
            "connect_timeout": connect_timeout,
            "options": "-c timezone=UTC",
        },
    )


settings = get_settings()
engine = build_engine(
    settings.database_url,
    echo=settings.debug,
    connect_timeout=settings.db_connect_timeout,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


def check_db_connection() -> None:
    """
    Verify database connectivity. Raises if unreachable.
    Call during application startup.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
