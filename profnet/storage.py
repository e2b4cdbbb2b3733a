import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from profnet.config import settings

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("users", "connections", "friend_requests", "messages")


def make_engine(database_url: str, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    check_same_thread=False is required for SQLite sessions used from
    FastAPI's threadpool.
    """
    connect_args = kwargs.pop("connect_args", {})
    if database_url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return create_engine(database_url, connect_args=connect_args, echo=False, **kwargs)


engine = make_engine(settings.DATABASE_URL)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    bind = bind or engine
    logger.debug(f"Initializing database with URL: {bind.url}")
    try:
        # Import models to register them with Base.metadata
        from profnet import models  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=bind)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health(db: Session) -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and all tables exist, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        db.execute(text("SELECT 1"))
        logger.debug("Database connectivity OK")

        existing = set(inspect(db.connection()).get_table_names())
        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            logger.error(f"Database schema not applied: missing tables {missing}")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
