import asyncio
import os
from datetime import datetime, timedelta

import aiosqlite

from recordset.db.session import DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  email TEXT UNIQUE,
  region TEXT,
  signup_date TEXT,
  last_seen TEXT,
  last_ip TEXT
);
CREATE TABLE IF NOT EXISTS products (
  productcode TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  price REAL,
  on_sale INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS stock (
  productcode TEXT PRIMARY KEY,
  quantity INTEGER DEFAULT 0,
  on_sale INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS orders (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id INTEGER,
  productcode TEXT,
  quantity INTEGER,
  order_date TEXT,
  FOREIGN KEY(user_id) REFERENCES users(id),
  FOREIGN KEY(productcode) REFERENCES products(productcode)
);
"""

PRODUCTS = [
    ("RR013840_0001", "Widget", 9.99, 1),
    ("RR013840_0002", "Gadget", 19.99, 0),
    ("RR013840_0003", "Doodad", 4.99, 0),
]


async def seed(db_path: str = None, user_count: int = 200, order_count: int = 150):
    db_path = db_path or DB_PATH
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA)
        # Clear existing sample rows for idempotence
        for table in ("orders", "stock", "products", "users"):
            await db.execute(f"DELETE FROM {table}")
        await db.execute("DELETE FROM sqlite_sequence WHERE name IN ('users', 'orders')")

        await db.executemany("INSERT INTO products (productcode, name, price, on_sale) VALUES (?, ?, ?, ?)", PRODUCTS)
        await db.executemany(
            "INSERT INTO stock (productcode, quantity, on_sale) VALUES (?, ?, ?)",
            [(code, 10 * (i + 1), 1 - on_sale) for i, (code, _, _, on_sale) in enumerate(PRODUCTS)],
        )

        regions = ["NA", "EU", "APAC", "LATAM"]
        base_date = datetime(2025, 1, 1)
        users = []
        for i in range(1, user_count + 1):
            users.append((
                f"User{i}",
                f"user{i}@example.com",
                regions[i % len(regions)],
                (base_date + timedelta(days=i)).strftime("%Y-%m-%d"),
            ))
        await db.executemany("INSERT INTO users (name, email, region, signup_date) VALUES (?,?,?,?)", users)

        orders = []
        for i in range(1, order_count + 1):
            orders.append((
                (i % user_count) + 1 if user_count else None,
                PRODUCTS[i % len(PRODUCTS)][0],
                (i % 5) + 1,
                (base_date + timedelta(days=i)).strftime("%Y-%m-%d"),
            ))
        await db.executemany(
            "INSERT INTO orders (user_id, productcode, quantity, order_date) VALUES (?, ?, ?, ?)", orders
        )

        await db.commit()
    return db_path


if __name__ == "__main__":
    print(f"Seeded DB at {asyncio.run(seed())}")
