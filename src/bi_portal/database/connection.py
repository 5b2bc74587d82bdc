"""
Database connection and session management.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from bi_portal.utils.config import get_config
from bi_portal.utils.logger import get_logger

logger = get_logger(__name__)


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(url: str, pool_size: int = 10, max_overflow: int = 20, echo: bool = False) -> Engine:
    """
    Create an engine for ``url``.

    SQLite gets a single shared connection usable from worker threads;
    other databases get a pre-pinged connection pool.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )

    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,  # Verify connections before using
        echo=echo,
    )


def get_engine() -> Engine:
    """Global engine built from configuration on first use."""
    global _engine

    if _engine is None:
        db_config = get_config().database
        _engine = build_engine(
            db_config.url,
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            echo=db_config.echo,
        )
        logger.info(f"Database engine created ({db_config.url.split(':', 1)[0]})")

    return _engine


def get_session_factory() -> sessionmaker:
    """Session factory bound to the global engine."""
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )

    return _session_factory


def configure(engine: Engine) -> sessionmaker:
    """Bind the module to an explicit engine (tests, CLI overrides)."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return _session_factory


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database session.

    Usage:
        with get_db_context() as db:
            company = db.query(Company).first()
    """
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """Initialize database - create all tables."""
    from bi_portal.database.models import Base

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables created successfully")


def check_connection() -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
