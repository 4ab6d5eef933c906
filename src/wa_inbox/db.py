import functools

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from wa_inbox.settings import get_settings


Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections are shared across threads (FastAPI runs sync
    dependencies in a threadpool); in-memory SQLite uses a single static
    connection so every session sees the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True, echo=False)


@functools.lru_cache()
def get_engine() -> Engine:
    """
    Get SQLAlchemy engine (cached).

    This function lazily initializes the engine to avoid import-time side effects.
    The engine is created using DATABASE_URL from settings.
    """
    settings = get_settings()
    return build_engine(settings.DATABASE_URL)


@functools.lru_cache()
def get_sessionmaker() -> sessionmaker[Session]:
    """
    Get SQLAlchemy sessionmaker (cached).
    """
    engine = get_engine()
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Register models on Base.metadata
    from wa_inbox.persistence import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


def get_db():
    """
    Dependency generator for FastAPI to get database session.

    Yields a database session and ensures it's closed after use.
    """
    SessionLocal = get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
