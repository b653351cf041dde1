#!/usr/bin/env python3
"""
Reference executor startup script.
Serves POST /orm over HTTP against the SQLite file in SQLITE_DB_PATH.
"""
import argparse
import asyncio
import os
import sys

import uvicorn

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from recordset.db.seed import seed

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the RecordSet SQL executor")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=9002)
    parser.add_argument("--seed", action="store_true", help="create and fill the demo tables first")
    args = parser.parse_args()

    if args.seed:
        print(f"Seeded DB at {asyncio.run(seed())}", file=sys.stderr)
    print(f"Starting executor on http://{args.host}:{args.port}/orm", file=sys.stderr)
    uvicorn.run("recordset.server.main:app", host=args.host, port=args.port)
