"""Database engine, session factory, and table initialization.

Nothing here is created at import time. The engine and session factory are
built by the DI container at startup (see ``provenance.container``) and every
store call opens its own short-lived session from that factory.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def build_engine(database_url: str, echo: bool = False):
    """Create a SQLAlchemy engine.

    Uses check_same_thread=False for SQLite so request threads and the
    background dispatcher can share the pool.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 15
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def build_session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine):
    """Create all tables that don't exist yet."""
    # Import models so they register with Base.metadata
    import provenance.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    return engine
