"""Database configuration and connection setup"""
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from booking_engine.config.settings import get_settings
from booking_engine.core.context import session_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url


def _install_sqlite_hooks(db_engine: Engine) -> None:
    """
    Let SQLAlchemy own transaction boundaries on SQLite and start every
    transaction with BEGIN IMMEDIATE, so the write lock is held from the
    first read of a check-then-insert.
    """

    @event.listens_for(db_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(db_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _install_postgres_hooks(db_engine: Engine) -> None:
    """Copy the request context into session settings for row-level security"""

    @event.listens_for(db_engine, "begin")
    def _set_rls_context(conn):
        for key, value in session_settings().items():
            conn.execute(
                text("SELECT set_config(:key, :value, true)"),
                {"key": key, "value": value},
            )


def create_db_engine(url: str = None, **overrides) -> Engine:
    """Create the database engine for the configured backend"""
    url = url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
        }
        if _is_memory_sqlite(url):
            db_engine = create_engine(
                url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=settings.DEBUG,
                **overrides,
            )
        else:
            db_engine = create_engine(url, connect_args=connect_args, echo=settings.DEBUG, **overrides)
        _install_sqlite_hooks(db_engine)
        return db_engine

    connect_args = {}
    if url.startswith("postgresql"):
        connect_args["options"] = (
            f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS} "
            f"-c lock_timeout={settings.DB_LOCK_TIMEOUT_MS}"
        )

    # Create database engine with connection pooling
    db_engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        connect_args=connect_args,
        echo=settings.DEBUG,
        **overrides,
    )

    if db_engine.dialect.name == "postgresql":
        _install_postgres_hooks(db_engine)

    return db_engine


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(db_engine: Engine = None):
    """Create all booking engine tables"""
    from booking_engine.models import Base

    db_engine = db_engine or engine
    Base.metadata.create_all(bind=db_engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    create_tables()
