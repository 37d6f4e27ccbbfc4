"""Database engine, session and transactional helpers."""

from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings

Base = declarative_base()


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine; SQLite connections get SAVEPOINT-safe transaction handling."""

    engine = create_engine(url, future=True, **kwargs)

    if engine.dialect.name == "sqlite":
        # pysqlite manages BEGIN itself and breaks nested transactions;
        # hand transaction control back to SQLAlchemy.
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn) -> None:
            conn.exec_driver_sql("BEGIN")

    return engine


settings = get_settings()

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db() -> Generator:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Run a block inside a SAVEPOINT.

    Everything written in the block is kept only if the block finishes; on
    any exception the savepoint is rolled back and the exception re-raised,
    leaving the enclosing transaction as it was before the block.
    """

    with session.begin_nested():
        yield session
