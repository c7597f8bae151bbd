# core/database.py
"""
Engine and session factory construction
"""

import logging
import time
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database_models import Base

logger = logging.getLogger(__name__)


def create_database_engine(database_url: str,
                           pool_size: int = 10,
                           max_overflow: int = 20,
                           echo: bool = False,
                           slow_query_threshold: float = 1.0) -> Engine:
    """
    Build a SQLAlchemy engine with settings suited to the database backend

    SQLite gets thread-shareable connections (the dev server is threaded and
    in-memory databases must share one connection); server databases get a
    pre-pinged, recycled connection pool.
    """
    engine_options = {'echo': echo}

    if database_url.startswith('sqlite'):
        engine_options['connect_args'] = {'check_same_thread': False}
        if database_url in ('sqlite://', 'sqlite:///:memory:'):
            engine_options['poolclass'] = StaticPool
    else:
        engine_options.update({
            'pool_size': pool_size,
            'max_overflow': max_overflow,
            'pool_pre_ping': True,
            'pool_recycle': 3600,
        })

    engine = create_engine(database_url, **engine_options)

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total = time.perf_counter() - context._query_start_time
        if total > slow_query_threshold:
            logger.warning(f"Slow query ({total:.2f}s): {statement[:100]}...")

    safe_url = database_url.split('@')[-1] if '@' in database_url else database_url
    logger.info(f"Database configured: {safe_url}")
    return engine


def create_session_factory(engine: Engine, create_tables: bool = True) -> sessionmaker:
    """Create the session factory, creating tables if requested"""
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory):
    """Transactional scope: commit on success, roll back on any error"""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
