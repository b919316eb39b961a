"""
Engine construction: pool limits from configuration.
"""
from __future__ import annotations

from sqlalchemy.pool import QueuePool, StaticPool

from erp.db.session import _pool_kwargs, build_engine
from erp.settings import DatabaseSettings


def test_pool_limits_map_to_engine_options():
    settings = DatabaseSettings(
        max_open_conns=20, max_idle_conns=5, max_lifetime_minutes=30, pool_timeout_seconds=7
    )

    assert _pool_kwargs(settings) == {
        "pool_size": 5,
        "max_overflow": 15,
        "pool_recycle": 1800,
        "pool_timeout": 7,
    }


def test_idle_limit_is_clamped_to_open_limit():
    kwargs = _pool_kwargs(DatabaseSettings(max_open_conns=4, max_idle_conns=10))

    assert kwargs["pool_size"] == 4
    assert kwargs["max_overflow"] == 0


def test_file_database_gets_bounded_pool(tmp_path):
    settings = DatabaseSettings(
        url=f"sqlite:///{tmp_path / 'pool.db'}",
        max_open_conns=6,
        max_idle_conns=2,
        max_lifetime_minutes=10,
        pool_timeout_seconds=3,
    )
    engine = build_engine(settings)
    try:
        assert isinstance(engine.pool, QueuePool)
        assert engine.pool.size() == 2
        assert engine.pool._max_overflow == 4
        assert engine.pool._recycle == 600
        assert engine.pool.timeout() == 3
    finally:
        engine.dispose()


def test_memory_database_shares_one_connection():
    engine = build_engine(DatabaseSettings(dbname=":memory:"))
    try:
        assert isinstance(engine.pool, StaticPool)
    finally:
        engine.dispose()
