from contextlib import contextmanager
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/sellisy.db")

engine = None
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, future=True)


def _ensure_sqlite_parent(database_url: str) -> None:
    # Avoid 'unable to open database file' for relative sqlite paths
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        db_path = database_url.split("sqlite:///")[-1]
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def configure(database_url: str = DATABASE_URL, **engine_kwargs):
    """Bind the module session factory to ``database_url`` and return the engine."""
    global engine
    _ensure_sqlite_parent(database_url)
    engine = create_engine(database_url, future=True, pool_pre_ping=True, **engine_kwargs)
    SessionLocal.configure(bind=engine)
    return engine


def init_db() -> None:
    from ..models import Base

    if engine is None:
        configure()
    Base.metadata.create_all(engine)


@contextmanager
def _session_scope(factory):
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session():
    if engine is None:
        configure()
    return _session_scope(SessionLocal)


def make_session_factory(bind):
    """Build a ``get_session``-style callable bound to another engine."""
    factory = sessionmaker(bind=bind, autoflush=False, expire_on_commit=False, future=True)
    return lambda: _session_scope(factory)
