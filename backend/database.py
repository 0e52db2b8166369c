"""SQLAlchemy engine and session setup, bound from Settings at startup."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()

engine = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def configure_database(database_url: str):
    """Create the engine for database_url and bind the session factory to it."""
    global engine

    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # In-memory SQLite lives per connection, so every session has to share one
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    SessionLocal.configure(bind=engine)
    return engine


def get_db():
    """Dependency for getting database sessions."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables."""
    import models  # noqa: F401  registers the mappers on Base

    Base.metadata.create_all(bind=engine)


def drop_db():
    """Drop all tables (used by tests)."""
    import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
