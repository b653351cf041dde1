import sqlite3

import pytest
from httpx import ASGITransport

from recordset.db.seed import PRODUCTS, SCHEMA
from recordset.orm import metadata
from recordset.server.main import create_app
from recordset.services.executor import ExecutorResult, HTTPExecutor


class RecordingExecutor:
    """Executor double: records statements, replays queued responses."""

    def __init__(self, base_url="fake://executor"):
        self.base_url = base_url
        self.calls = []
        self.responses = []

    def respond(self, *results):
        self.responses.extend(results)

    @property
    def sql(self):
        return [sql for sql, _ in self.calls]

    async def execute(self, sql, params=()):
        self.calls.append((sql, list(params)))
        if self.responses:
            r = self.responses.pop(0)
            if isinstance(r, Exception):
                raise r
            return r
        return ExecutorResult()


@pytest.fixture(autouse=True)
def _clear_pk_cache():
    metadata.clear_cache()
    yield
    metadata.clear_cache()


@pytest.fixture()
def fake():
    return RecordingExecutor()


@pytest.fixture()
def anonymous_fake():
    """Executor double with no base_url."""
    return RecordingExecutor(base_url=None)


@pytest.fixture()
def db_path(tmp_path):
    """Temporary SQLite database with the demo schema and a few rows."""
    path = tmp_path / "orm.sqlite"
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA)
    conn.executemany("INSERT INTO products (productcode, name, price, on_sale) VALUES (?, ?, ?, ?)", PRODUCTS)
    conn.executemany(
        "INSERT INTO stock (productcode, quantity, on_sale) VALUES (?, ?, ?)",
        [("RR013840_0001", 10, 0), ("RR013840_0002", 20, 1)],
    )
    conn.executemany(
        "INSERT INTO users (name, email, region, signup_date) VALUES (?, ?, ?, ?)",
        [
            ("Alice", "alice@example.com", "EU", "2025-01-02"),
            ("Bob", "bob@example.com", "NA", "2025-01-03"),
            ("Carol", "carol@example.com", None, "2025-01-04"),
        ],
    )
    conn.executemany(
        "INSERT INTO orders (user_id, productcode, quantity, order_date) VALUES (?, ?, ?, ?)",
        [(1, "RR013840_0001", 2, "2025-02-01"), (2, "RR013840_0002", 1, "2025-02-02")],
    )
    conn.commit()
    conn.close()
    return str(path)


@pytest.fixture()
def app(db_path):
    return create_app(db_path)


@pytest.fixture()
def executor(app):
    return HTTPExecutor("http://test", transport=ASGITransport(app=app), retries=0)
