from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool

from storefront.config import settings

# Base for ALL models
Base = declarative_base()

SessionFactory = Callable[[], Session]


# -----------------------
# SQLAlchemy Engine
# -----------------------
def build_engine(url: str) -> Engine:
    """Create an engine for `url`; SQLite connections are shared across request threads."""
    url = url.strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One connection, otherwise every checkout gets a fresh empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, echo=False, **kwargs)

    return create_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = build_session_factory(engine)


def create_all(bind: Engine) -> None:
    """Create every table registered on Base."""
    # Ensure models are loaded
    from storefront import models  # noqa: F401
    Base.metadata.create_all(bind=bind)


@contextmanager
def session_scope(factory: SessionFactory) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
