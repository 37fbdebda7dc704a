"""Engine and session factory setup."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from lyricsync.config import settings
from lyricsync.db.tables import Base

logger = logging.getLogger(__name__)

IMMEDIATE_OPTION = "lyricsync_immediate"


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets explicit transaction control.

    pysqlite starts transactions lazily, so two writers can both read the
    canonical flag before either writes. Transactions opened through
    ``write_transaction`` begin with BEGIN IMMEDIATE, which serializes
    writers for the whole transaction. Reads use a plain deferred BEGIN and
    do not queue behind writers.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(connection) -> None:
        if connection.get_execution_options().get(IMMEDIATE_OPTION):
            connection.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            connection.exec_driver_sql("BEGIN")

    return engine


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)


@contextmanager
def write_transaction(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Session whose transaction takes the write lock as it begins; commits on exit."""
    with session_factory.begin() as session:
        session.connection(execution_options={IMMEDIATE_OPTION: True})
        yield session


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """Process-wide session factory built from settings.database_url."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    logger.info("Database ready: %s", engine.url.render_as_string(hide_password=True))
    return create_session_factory(engine)
