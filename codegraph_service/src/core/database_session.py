# codegraph_service/src/core/database_session.py
"""
Database session factory.

The engine and sessionmaker are created on first use and live until
dispose_engine() is called.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from src.core.config import DATABASE_URL, DB_ECHO

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_sessionmaker: Optional[sessionmaker] = None


def get_engine(url: Optional[str] = None) -> Engine:
    """Return the process-wide engine, creating it on first call."""
    global _engine
    if _engine is None:
        database_url = url or DATABASE_URL
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        _engine = create_engine(
            database_url,
            echo=DB_ECHO,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        logger.info(f"Database engine initialized ({_engine.dialect.name})")
    return _engine


def get_sessionmaker(url: Optional[str] = None) -> sessionmaker:
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = sessionmaker(bind=get_engine(url), expire_on_commit=False)
    return _sessionmaker


def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _sessionmaker
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _sessionmaker = None
