from contextlib import contextmanager
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..models.base import Base


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/reelstudio.db")


def _ensure_sqlite_dir(url: str) -> None:
    # Ensure sqlite file parent directory exists to avoid 'unable to open database file'
    if url.startswith("sqlite:///") and ":memory:" not in url:
        db_path = url.split("sqlite:///")[-1]
        try:
            Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            # real error will surface on connect if still invalid
            pass


def build_engine(url: str):
    _ensure_sqlite_dir(url)
    if url.startswith("sqlite") and ":memory:" in url:
        # a single shared connection keeps the in-memory database alive across sessions
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, future=True)


def make_session_factory(engine):
    """Return a ``get_session``-style context manager bound to ``engine``."""
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def _session_scope():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _session_scope


def init_db(bind=None) -> None:
    # import for side effects: registers every table on Base.metadata
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@contextmanager
def get_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
