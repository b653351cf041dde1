import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from recordset.core import config
from recordset.orm.literals import encode

logger = logging.getLogger(__name__)


class ExecuteRequest(BaseModel):
    sql: str = ""
    params: List[Any] = []


class ExecutorResult(BaseModel):
    """Executor response body."""
    success: str = "Y"
    data: List[Dict[str, Any]] = []
    nice_sql: Optional[str] = None
    error: Optional[str] = None
    last_insert_id: Optional[int] = None
    rowcount: Optional[int] = None

    @field_validator("data", mode="before")
    @classmethod
    def _no_data(cls, v):
        return v or []

    @property
    def ok(self) -> bool:
        return self.success == "Y"


class TransportError(RuntimeError):
    """The request never produced an executor response."""

    def __init__(self, status_text: str, body: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(f"{status_text}: {detail or body or ''}".rstrip(": "))
        self.status_text = status_text
        self.body = body
        self.detail = detail


@runtime_checkable
class Executor(Protocol):
    """Anything that runs a SQL string with positional params."""

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecutorResult:
        ...


class HTTPExecutor:
    """Async executor client with connect retries."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        path: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.EXECUTOR_URL).rstrip("/")
        self.path = path or config.EXECUTOR_PATH
        self.retries = config.HTTP_RETRIES if retries is None else retries
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.HTTP_TIMEOUT if timeout is None else timeout,
            transport=transport,
        )

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return await self.client.post(self.path, json=payload)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                # nothing reached the server, so resending is safe
                if attempt >= self.retries:
                    raise TransportError("error", None, str(e)) from e
                wait = 0.5 * (2 ** attempt)
                logger.warning("Executor request failed on attempt %d: %s; retrying in %.1fs", attempt + 1, e, wait)
                await asyncio.sleep(wait)
                attempt += 1
            except httpx.TimeoutException as e:
                raise TransportError("timeout", None, str(e)) from e
            except httpx.HTTPError as e:
                raise TransportError("error", None, str(e)) from e

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecutorResult:
        try:
            # json mode turns Decimal/date/datetime into strings
            payload = ExecuteRequest(sql=sql, params=[encode(p) for p in params]).model_dump(mode="json")
        except (TypeError, ValueError) as e:
            raise TransportError("error", None, f"Cannot encode params: {e}") from e
        resp = await self._post(payload)
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(resp.reason_phrase or str(resp.status_code), resp.text, str(e)) from e
        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError("parsererror", resp.text, str(e)) from e
        try:
            return ExecutorResult.model_validate(body)
        except ValidationError as e:
            raise TransportError("parsererror", resp.text, str(e)) from e

    async def close(self):
        await self.client.aclose()
