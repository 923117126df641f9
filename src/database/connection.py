"""
Database connection management for the inbox rules engine
"""
import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = 'sqlite:///inbox_rules.db'

# Installed by init_db, used when no factory is passed explicitly
_default_factory: Optional[sessionmaker] = None


def create_session_factory(database_url: str) -> sessionmaker:
    """Build an engine for the given URL, create the schema and return a session factory"""
    engine = create_engine(database_url)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(database_url: Optional[str] = None) -> sessionmaker:
    """Create all tables and make the database the default for new sessions.

    Without an explicit URL, DATABASE_URL is read from the environment at call time.
    """
    global _default_factory
    database_url = database_url or os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL)
    _default_factory = create_session_factory(database_url)
    logger.debug(f"Database ready at {_default_factory.kw['bind'].url!r}")
    return _default_factory


def get_db_session(factory: Optional[sessionmaker] = None) -> Session:
    if factory is None:
        factory = _default_factory or init_db()
    return factory()


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """Session that is always closed; uncommitted work is rolled back"""
    db = get_db_session(factory)
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
