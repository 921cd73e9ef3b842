import logging
import uuid
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def new_id(prefix):
    return f"{prefix}_{uuid.uuid4().hex}"


def create_session_factory(database_url, echo=False):
    """
    Build an engine for ``database_url``, create missing tables and return a
    session factory bound to it.

    An in-memory SQLite URL gets a single shared connection so every session
    sees the same database.
    """
    kwargs = {"echo": echo, "future": True}
    if database_url.startswith("sqlite") and (
        database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url
    ):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_engine(database_url, **kwargs)

    # Create tables if not present
    Base.metadata.create_all(engine)
    logger.debug("Database ready at %s", engine.url)

    # Records leave their session detached, attributes stay loaded
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(session_factory, session=None):
    """
    Yield a session that commits on success and rolls back on error.

    When ``session`` is given the caller owns the transaction and it is
    yielded unchanged.
    """
    if session is not None:
        yield session
        return

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
