# database/simple_connection.py
# SQLAlchemy engine and session factory for the credential table

import logging
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import AppConfig
from database.models import Base

logger = logging.getLogger(__name__)


def make_engine(database_url: str = None) -> Engine:
    """Create an engine for the given URL (defaults to AppConfig.DATABASE_URL)"""
    url = database_url or AppConfig.DATABASE_URL
    return create_engine(
        url,
        echo=False,  # Set to True for SQL debugging
        connect_args={"check_same_thread": False} if "sqlite" in url else {}
    )


engine = make_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_database(bind: Engine = None):
    """Create tables that do not exist yet"""
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"📁 Database ready: {target.url}")


def get_db_session() -> Session:
    """
    Get a SQLAlchemy session for direct use (must be closed manually)
    """
    return SessionLocal()
