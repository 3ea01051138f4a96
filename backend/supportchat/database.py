"""
Database configuration and session management for the durable chat store.

Uses SQLAlchemy ORM. The engine is created at startup by the storage
selection step, so an unreachable database never breaks module import.
"""

import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from supportchat.config import settings

# Base class for declarative models
Base = declarative_base()


def create_db_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create the SQLAlchemy engine for the configured database.
    """
    url = url or settings.DATABASE_URL
    echo = settings.DATABASE_ECHO if echo is None else echo

    connect_args = {}
    if url.startswith("sqlite"):
        # Create database directory if it doesn't exist
        db_dir = os.path.dirname(url.replace("sqlite:///", ""))
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)
        connect_args["check_same_thread"] = False

    return create_engine(
        url,
        echo=echo,
        connect_args=connect_args,
        pool_pre_ping=True,
    )


def check_connection(engine: Engine) -> None:
    """Raise if the database cannot be reached."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def init_db(engine: Engine) -> None:
    """
    Initialize database by creating all tables.
    """
    # Import models to ensure they're registered
    from supportchat.models import user, chat  # noqa: F401

    Base.metadata.create_all(bind=engine)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
    )


@contextmanager
def get_db_context(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Context manager for a database session.
    Rolls back on error so the connection goes back to the pool clean.
    """
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
