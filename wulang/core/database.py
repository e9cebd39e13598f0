"""
Database connection and session management.
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from wulang.core.logging import get_logger

logger = get_logger(__name__)

# Create base class for models
Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets thread sharing and enforced foreign keys."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,
        pool_pre_ping=True,
    )

    # Enable foreign keys for SQLite
    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.info("Database engine created", extra={"extra_data": {"database_url": database_url}})
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory whose loaded rows stay readable after the session closes."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Transactional scope: commit on success, rollback on any error."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _ensure_sqlite_directory(database_url: str) -> None:
    # sqlite:///./data/wulang.db -> data/
    if not database_url.startswith("sqlite:///") or ":memory:" in database_url:
        return
    db_path = database_url.replace("sqlite:///", "")
    if db_path.startswith("./"):
        db_path = db_path[2:]
    db_dir = Path(db_path).parent
    if db_dir and not db_dir.exists():
        db_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created database directory: {db_dir}")


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    from wulang.models import conversation  # noqa: F401 - Import to register models

    _ensure_sqlite_directory(str(engine.url))
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def check_db_connection(engine: Engine) -> bool:
    """Check if database is reachable."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
