from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from polytrans.config import Settings, settings


def build_engine(config: Settings | None = None, **kwargs) -> Engine:
    config = config or settings
    if config.database_url.startswith("sqlite") and ":memory:" in config.database_url:
        # One shared connection, so post-commit work sees the same database.
        kwargs.setdefault("poolclass", StaticPool)
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(config.database_url, echo=config.echo_sql, future=True, **kwargs)
    if engine.dialect.name == "sqlite" and engine.dialect.driver == "pysqlite":
        _emit_sqlite_begin(engine)
    return engine


def _emit_sqlite_begin(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(connection):
        connection.exec_driver_sql("BEGIN")


def build_session_factory(engine: Engine, backend=None) -> sessionmaker:
    factory = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
    if backend is not None:
        backend.bind(factory)
    return factory


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
