import re
import time
from datetime import datetime
from typing import Any, List, Optional, Sequence

import aiosqlite

from recordset.db.session import DB_PATH
from recordset.orm.query import nice_sql


def _now():
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _curdate():
    return datetime.now().strftime("%Y-%m-%d")


def _curtime():
    return datetime.now().strftime("%H:%M:%S")


def _unix_timestamp():
    return int(time.time())


# MySQL-style functions so literal markers work against SQLite
SQL_FUNCTIONS = {
    "now": _now,
    "sysdate": _now,
    "curdate": _curdate,
    "curtime": _curtime,
    "unix_timestamp": _unix_timestamp,
}

_CLIENTIP = re.compile(r"clientip\(\)", re.IGNORECASE)
_SERVERIP = re.compile(r"serverip\(\)", re.IGNORECASE)


def substitute_addresses(sql: str, params: Sequence[Any], client_ip: str, server_ip: str):
    """Replace clientip()/serverip() in the SQL text (quoted) and in params."""
    sql = _CLIENTIP.sub(f"'{client_ip}'", sql)
    sql = _SERVERIP.sub(f"'{server_ip}'", sql)
    out = []
    for p in params:
        if isinstance(p, str) and p.strip().lower() == "clientip()":
            p = client_ip
        elif isinstance(p, str) and p.strip().lower() == "serverip()":
            p = server_ip
        out.append(p)
    return sql, out


async def execute_sql(sql: str, params: Optional[List[Any]] = None, db_path: Optional[str] = None):
    """Execute one statement and return the executor response body.

    Statements that produce rows are fetched; everything else is committed.
    """
    params = list(params or [])
    response = {"success": "Y", "data": [], "nice_sql": nice_sql(sql, params)}
    if not sql or not sql.strip():
        return {"success": "N", "data": [], "error": "Empty request"}

    async with aiosqlite.connect(db_path or DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        for name, func in SQL_FUNCTIONS.items():
            await db.create_function(name, 0, func)
        try:
            cur = await db.execute(sql, params)
            if cur.description is not None:
                rows = await cur.fetchall()
                response["data"] = [dict(r) for r in rows]
            else:
                await db.commit()
                response["rowcount"] = cur.rowcount
                if sql.lstrip().lower().startswith("insert"):
                    response["last_insert_id"] = cur.lastrowid
        except (aiosqlite.Error, ValueError) as e:
            return {
                "success": "N",
                "data": [],
                "nice_sql": response["nice_sql"],
                "error": (
                    f"{e}\n"
                    f'sql: "{sql}"\n'
                    f'params({len(params)}): "{",".join(str(p) for p in params)}"'
                ),
            }
    return response
