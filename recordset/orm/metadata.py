import logging
from typing import Optional

from cachetools import TTLCache

from recordset.core import config
from recordset.services.executor import Executor, TransportError

logger = logging.getLogger(__name__)

DEFAULT_PK = "id"

PK_SQL = {
    "mysql": "SELECT column_name FROM information_schema.statistics WHERE index_name='PRIMARY' AND table_name=?",
    "sqlite": "SELECT name AS column_name FROM pragma_table_info(?) WHERE pk = 1",
}

_PK_CACHE = TTLCache(maxsize=256, ttl=config.PK_CACHE_TTL)


def _cache_key(executor: Executor, table: str):
    """Cache per store; executors without a base_url are not cached."""
    base_url = getattr(executor, "base_url", None)
    return (base_url, table) if base_url else None


async def discover_primary_key(executor: Executor, table: str, dialect: Optional[str] = None) -> str:
    """Look up the primary key column of ``table``, falling back to ``id``."""
    dialect = dialect or config.PK_DIALECT
    key = _cache_key(executor, table)
    if key is not None and key in _PK_CACHE:
        logger.debug("Cache hit for primary key of %s", table)
        return _PK_CACHE[key]

    sql = PK_SQL.get(dialect)
    if sql is None:
        logger.error("Unknown primary key dialect %r, guessing %r for %s", dialect, DEFAULT_PK, table)
        return DEFAULT_PK

    try:
        result = await executor.execute(sql, [table])
    except TransportError as e:
        logger.error("Primary key lookup for %s failed: %s", table, e)
        return DEFAULT_PK
    if not result.ok or not result.data:
        logger.error("Primary key lookup for %s failed: %s", table, result.error or "no key found")
        return DEFAULT_PK

    row = result.data[0]
    pk = row.get("column_name") or row.get("COLUMN_NAME")
    if not pk:
        return DEFAULT_PK
    logger.info("Primary key of %s: %s", table, pk)
    if key is not None:
        _PK_CACHE[key] = pk
    return pk


def clear_cache():
    _PK_CACHE.clear()
