from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings

SQLITE_BUSY_TIMEOUT_MS = 5000


def _is_in_memory(url: str) -> bool:
    database = make_url(url).database
    return not database or database == ":memory:"


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Build an engine; SQLite gets per-connection pragmas.

    An in-memory SQLite URL shares one connection across threads so every
    session sees the same tables.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    options: dict[str, object] = {"connect_args": {"check_same_thread": False}}
    in_memory = _is_in_memory(database_url)
    if in_memory:
        options["poolclass"] = StaticPool
    eng = create_engine(database_url, echo=echo, **options)

    @event.listens_for(eng, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")
        cursor.close()

    return eng


def make_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


_settings = get_settings()
engine = make_engine(_settings.database_url, echo=_settings.sql_echo)
SessionLocal = make_sessionmaker(engine)


class Base(DeclarativeBase):
    pass


def create_tables(bind: Engine = engine) -> None:
    import models  # noqa: F401  registers the mapped classes on Base.metadata

    Base.metadata.create_all(bind)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
