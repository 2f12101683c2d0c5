"""
Database base configuration for SQLAlchemy models.

Uses SQLAlchemy 2.0 style with DeclarativeBase and a synchronous engine.
The calibration dispatcher writes from worker threads, so every repository
opens its own short-lived session from the session factory.
"""

import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

# Load environment variables
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "") or "sqlite:///./adaptive_core.db"

# Echo SQL only when explicitly requested
SQL_ECHO = os.getenv("SQL_ECHO", "False").lower() in ("true", "1", "yes")

# Connection pool settings (ignored for SQLite)
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
POOL_MAX_OVERFLOW = int(os.getenv("DB_POOL_MAX_OVERFLOW", "20"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))
POOL_PRE_PING = os.getenv("DB_POOL_PRE_PING", "True").lower() in ("true", "1", "yes")


def build_engine(url: str = DATABASE_URL) -> Engine:
    """Create an engine with pool settings appropriate to the backend."""
    if url.startswith("sqlite"):
        # Worker threads share connections with request threads
        return create_engine(
            url,
            echo=SQL_ECHO,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        echo=SQL_ECHO,
        pool_size=POOL_SIZE,
        max_overflow=POOL_MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=POOL_PRE_PING,
    )


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base class."""

    pass
