# jobmatch/db/session.py
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def make_engine(db_url: str) -> Engine:
    # SQLite-friendly connect args
    is_sqlite = db_url.startswith("sqlite")
    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    kwargs = {}
    # in-memory SQLite must share one connection or every session sees an empty db
    if is_sqlite and (db_url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in db_url):
        kwargs["poolclass"] = StaticPool

    engine = create_engine(
        db_url,
        future=True,
        pool_pre_ping=True,
        connect_args=connect_args,
        **kwargs,
    )

    # Enable WAL + sane pragmas for SQLite
    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA synchronous=NORMAL;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        future=True,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
