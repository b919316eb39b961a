from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from erp.settings import DatabaseSettings

logger = logging.getLogger(__name__)


def build_engine(settings: DatabaseSettings) -> Engine:
    """
    Create the process-wide engine (connection pool).

    Pool mapping:
    - ``max_idle_conns`` -> ``pool_size`` (connections kept open when idle)
    - ``max_open_conns`` -> ``pool_size + max_overflow`` (hard cap; callers block beyond it)
    - ``max_lifetime_minutes`` -> ``pool_recycle``
    - ``pool_timeout_seconds`` -> how long a caller waits for a free connection
    """

    url = settings.resolved_url()
    kwargs: dict = {"echo": settings.echo, "future": True}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every checkout sees an empty database.
            kwargs["poolclass"] = StaticPool
        else:
            kwargs.update(_pool_kwargs(settings))
    else:
        kwargs["pool_pre_ping"] = True
        kwargs.update(_pool_kwargs(settings))

    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)

    logger.info("Database engine created dialect=%s", engine.dialect.name)
    return engine


def _pool_kwargs(settings: DatabaseSettings) -> dict:
    pool_size = min(settings.max_idle_conns, settings.max_open_conns)
    return {
        "pool_size": pool_size,
        "max_overflow": settings.max_open_conns - pool_size,
        "pool_recycle": settings.max_lifetime_minutes * 60,
        "pool_timeout": settings.pool_timeout_seconds,
    }


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite opens transactions lazily on its own; hand BEGIN over to SQLAlchemy
    # so SAVEPOINT / ROLLBACK TO behave like on the server databases.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    # expire_on_commit=False: records returned from a finished unit of work stay readable.
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)


class Database:
    """
    Engine + session factory pair, built once at the composition root.

    Components receive this object (or its ``session_factory``) explicitly instead of
    importing a module-level engine.
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        self.engine = build_engine(settings)
        self.session_factory = build_session_factory(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database engine disposed")

