"""
Reference executor endpoint.

Takes ``{"sql": ..., "params": [...]}`` and answers
``{"success": "Y"|"N", "data": [...], "nice_sql": ..., "error": ...}``
against a SQLite file. Stateless per call.
"""
import socket
import time
import traceback
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from recordset.core import config
from recordset.core.logging import get_logger, setup_logging
from recordset.db.session import DB_PATH
from recordset.services.executor import ExecuteRequest
from recordset.services.sql_engine import execute_sql, substitute_addresses

setup_logging()
logger = get_logger("recordset.server")


def server_address() -> str:
    if config.SERVER_IP:
        return config.SERVER_IP
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"


def create_app(db_path: Optional[str] = None) -> FastAPI:
    app = FastAPI(title="RecordSet SQL executor")
    app.state.db_path = db_path or DB_PATH

    @app.middleware("http")
    async def add_request_id_and_log(request: Request, call_next):
        request_id = str(uuid4())
        start = time.time()
        logger.info(f"request_start request_id={request_id} method={request.method} path={request.url.path}")
        response = await call_next(request)
        duration = (time.time() - start) * 1000
        logger.info(f"request_end request_id={request_id} path={request.url.path} status_code={response.status_code} duration_ms={duration:.1f}")
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": "N",
                "data": [],
                "error": f"{exc.__class__.__name__}: {exc}",
                "trace": traceback.format_exc(),
            },
        )

    @app.post("/orm")
    async def orm(payload: ExecuteRequest, request: Request):
        if not payload.sql.strip():
            return {"success": "N", "data": [], "error": "Empty request"}
        client_ip = request.client.host if request.client else "127.0.0.1"
        sql, params = substitute_addresses(payload.sql, payload.params, client_ip, server_address())
        result = await execute_sql(sql, params, db_path=app.state.db_path)
        if result["success"] != "Y":
            logger.warning("Statement failed: %s", result.get("error"))
        return result

    @app.get("/health")
    async def health():
        return {"status": "ok", "db_path": app.state.db_path}

    return app


app = create_app()
