from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def make_engine(url: str, *, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        # In-memory SQLite lives in a single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, future=True, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True, future=True)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    # Rows outlive their session; the store hands them back detached.
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker):
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
