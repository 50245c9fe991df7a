"""
db.py
SQLAlchemy engine + query helpers, and database initialization
(creates tables, seeds the value lists).
"""

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import create_engine, event, text

from config import Config
from models import metadata, VALUE_LISTS

logger = logging.getLogger(__name__)

_engine = None
_engine_url = None


class DatabaseNotConfigured(RuntimeError):
    pass


def _configured_url():
    if has_app_context():
        return current_app.config.get('LOCAL_DB_URL')
    return Config().LOCAL_DB_URL


def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute('PRAGMA foreign_keys=ON')
    cur.close()


def get_engine(url=None):
    """Return the shared engine (one connection pool per process)"""
    global _engine, _engine_url

    url = url or _configured_url()
    if not url:
        raise DatabaseNotConfigured('LOCAL_DB_URL is not set')

    if _engine is None or _engine_url != url:
        if _engine is not None:
            _engine.dispose()
        _engine = create_engine(url, pool_pre_ping=True)
        if _engine.dialect.name == 'sqlite':
            event.listen(_engine, 'connect', _enable_sqlite_foreign_keys)
        _engine_url = url
        logger.info('Database engine created for %s', _engine.url.render_as_string(hide_password=True))
    return _engine


def dispose_engine():
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None


def now_iso():
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


def execute(sql, params=None):
    """Run a statement in its own transaction and return the affected row count"""
    with get_engine().begin() as conn:
        result = conn.execute(text(sql), params or {})
        return result.rowcount


def executemany(sql, seq_of_params):
    if not seq_of_params:
        return
    with get_engine().begin() as conn:
        conn.execute(text(sql), list(seq_of_params))


def execute_all(statements):
    """
    Run (sql, params) pairs in a single transaction: all of them apply or none.
    A list of params runs the statement once per entry; an empty list skips it.
    """
    with get_engine().begin() as conn:
        for sql, params in statements:
            if isinstance(params, list) and not params:
                continue
            conn.execute(text(sql), params if params is not None else {})


def fetch_one(sql, params=None):
    with get_engine().begin() as conn:
        row = conn.execute(text(sql), params or {}).mappings().first()
        return dict(row) if row is not None else None


def fetch_all(sql, params=None):
    with get_engine().begin() as conn:
        return [dict(r) for r in conn.execute(text(sql), params or {}).mappings()]


def fetch_scalar(sql, params=None, default=None):
    with get_engine().begin() as conn:
        value = conn.execute(text(sql), params or {}).scalar()
        return default if value is None else value


def build_set_clause(row, allowed):
    """
    Build "col = :col, ..." for the keys of `row` that are in `allowed`.
    Returns (clause, params); clause is '' when nothing is left to update.
    """
    params = {k: v for k, v in row.items() if k in allowed}
    clause = ', '.join(f'{k} = :{k}' for k in params)
    return clause, params


def ping():
    fetch_scalar('SELECT 1')
    return True


def _seed_value_lists():
    for list_name, values in VALUE_LISTS.items():
        existing = fetch_scalar(
            'SELECT COUNT(*) FROM value_lists WHERE list_name = :name',
            {'name': list_name},
            default=0,
        )
        if existing:
            continue
        executemany(
            'INSERT INTO value_lists (list_name, value, position) VALUES (:name, :value, :position)',
            [{'name': list_name, 'value': v, 'position': i} for i, v in enumerate(values)],
        )


def init_db(url=None):
    """
    Initialize the database.
    - Create tables that do not exist yet
    - Seed the rank/profile value lists when empty
    """
    engine = get_engine(url)
    metadata.create_all(engine)
    _seed_value_lists()
