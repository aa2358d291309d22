# © [2025] EDT&Partners. Licensed under CC BY 4.0.

import time
import logging
from functools import wraps
from sqlalchemy import create_engine, orm
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

Base = orm.declarative_base()

_ENGINE = None
_SESSION_LOCAL = None

def retry_on_disconnect(max_retries=3, initial_delay=1, max_delay=10):
    def decorator(func):
        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            delay = initial_delay
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except OperationalError:
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                        delay = min(delay * 2, max_delay)
                        logger.info(f"Retrying connection to the database (attempt {attempt + 1}/{max_retries})")
                    else:
                        raise

        return sync_wrapper
    return decorator

def build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if ":memory:" in database_url or database_url == "sqlite://" else None,
        )
    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_use_lifo=True
    )

def init_db(database_url: str):
    """Bind the module-level engine and session factory to database_url"""
    global _ENGINE, _SESSION_LOCAL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = build_engine(database_url)
    _SESSION_LOCAL = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)
    return _ENGINE

def get_engine():
    if _ENGINE is None:
        raise RuntimeError("Database is not initialized, call init_db() first")
    return _ENGINE

def get_session_local():
    if _SESSION_LOCAL is None:
        raise RuntimeError("Database is not initialized, call init_db() first")
    return _SESSION_LOCAL

@retry_on_disconnect()
def create_tables():
    # Import models so they register on Base.metadata
    import database.models  # noqa: F401
    Base.metadata.create_all(bind=get_engine())

def get_db():
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
