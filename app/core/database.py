"""
Database connection and session management.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
import logging
from contextlib import contextmanager
from typing import Generator

from app.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Engine keyword arguments for the configured backend."""
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live on a single shared connection
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,   # Validate connections before use
        "pool_recycle": 300,     # Recycle connections every 5 minutes
    }


# Create SQLAlchemy engine
engine = create_engine(
    settings.database_url,
    echo=settings.debug,  # Log SQL queries in debug mode
    **_engine_options(settings.database_url)
)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Used in FastAPI endpoints.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Session for scheduler jobs, copy replication and seeding.
    Commits when the block finishes and rolls back on error.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """Create every platform table that does not exist yet."""
    try:
        # Registers all models on Base
        import app.models  # noqa

        Base.metadata.create_all(bind=engine)
        logger.info(f"Database ready with {len(Base.metadata.tables)} tables")

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def drop_db():
    """Drop every platform table. Used to reset local and test databases."""
    import app.models  # noqa

    Base.metadata.drop_all(bind=engine)
    logger.info("Dropped all platform tables")


def check_db_connection() -> bool:
    """Run a trivial query to confirm the database answers."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
