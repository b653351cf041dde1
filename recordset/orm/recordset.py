"""
RecordSet: build SQL for a table, run it through an executor and keep the rows.

Order of steps: construct, join, load, union, squash, get/set, save.

    product = RecordSet("product", "productcode", info="pricing")
    await product.load("productcode", "RR013840_0001")
    product.get("description")
    product.set("sellingprice", 99.99)
    product.set("updated", NOW)
    await product.save()

Database failures never raise: every operation returns False and leaves
a diagnostic in ``last_error``.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from recordset.core import config
from recordset.core.diagnostics import (
    ConfigurationError,
    Diagnostic,
    ErrorCode,
    configuration,
    describe_call,
)
from recordset.orm.literals import Literal
from recordset.orm.metadata import DEFAULT_PK, discover_primary_key
from recordset.orm.query import (
    JOIN_TYPES,
    MAX_REFERENCE_LENGTH,
    DeleteQuery,
    InsertQuery,
    SelectQuery,
    Statement,
    UpdateQuery,
    as_list,
    base_table,
    nice_sql,
    normalize_params,
    prepare_filter,
    project_columns,
)
from recordset.orm.table import ResultTable
from recordset.services.executor import Executor, ExecutorResult, HTTPExecutor, TransportError

logger = logging.getLogger(__name__)


class LoadOptions(BaseModel):
    """Options for ``RecordSet.load``; accepts ``tableIndex`` and ``async`` as well."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    where: Optional[str] = None
    params: Any = None
    columns: Union[None, str, List[str]] = None
    sort: Union[None, str, List[str]] = None
    group: Union[None, str, List[str]] = None
    limit: Optional[int] = None
    table_index: int = Field(0, alias="tableIndex")
    background: bool = Field(False, alias="async")


@dataclass
class StatementResult:
    table: str
    row_index: int
    statement: Statement
    success: bool
    error: Optional[str] = None
    last_insert_id: Optional[int] = None


@dataclass
class SaveReport:
    results: List[StatementResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    @property
    def failed(self) -> List[StatementResult]:
        return [r for r in self.results if not r.success]


def _is_null(value: Any) -> bool:
    return value is None or (isinstance(value, Literal) and value.is_null)


class RecordSet:
    def __init__(
        self,
        table: Optional[str],
        pk: Optional[str] = None,
        info: str = "",
        executor: Optional[Executor] = None,
        debug: Optional[bool] = None,
        dialect: Optional[str] = None,
    ):
        self.info = info or ""
        self.debug = config.DEBUG if debug is None else debug
        self.dialect = dialect or config.PK_DIALECT
        self.executor = executor if executor is not None else HTTPExecutor()
        self.result = ResultTable()
        self.last_query = ""
        self.last_error = ""
        self.last_save: Optional[SaveReport] = None
        self._owners: Dict[str, str] = {}
        self._joined: Set[int] = set()
        self._pending: Set[asyncio.Task] = set()

        if not table:
            logger.error("Table is not specified")
            self.disabled = True
            self._tables: List[str] = []
            self._primary_keys: List[str] = []
            self.pk_discovered = False
            return

        self.disabled = False
        self._tables = [table]
        # pk decides between INSERT and UPDATE on save
        self._primary_keys = [pk or DEFAULT_PK]
        self.pk_discovered = pk is not None

    @classmethod
    async def open(cls, table, pk=None, info="", executor=None, debug=None, dialect=None) -> "RecordSet":
        """Construct and, when no key was given, look the key up first."""
        rs = cls(table, pk, info=info, executor=executor, debug=debug, dialect=dialect)
        if not rs.disabled and pk is None:
            await rs.discover_primary_key()
        return rs

    def __repr__(self):
        return f"<RecordSet tables={self._tables!r} rows={len(self.result)}>"

    def __str__(self):
        return self.render()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def tables(self) -> List[str]:
        return list(self._tables)

    @property
    def primary_keys(self) -> List[str]:
        return list(self._primary_keys)

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return self.result.rows

    @property
    def columns(self) -> List[str]:
        return list(self.result.columns)

    @property
    def column_widths(self) -> List[int]:
        return list(self.result.widths)

    @property
    def num_rows(self) -> int:
        return len(self.result)

    def is_empty(self) -> bool:
        return self.num_rows == 0

    def get_error(self) -> str:
        return self.last_error

    def get_sql(self) -> str:
        return self.last_query

    nice_sql = staticmethod(nice_sql)

    # ------------------------------------------------------------------
    # Failure bookkeeping
    # ------------------------------------------------------------------
    def _record(self, diagnostic: Diagnostic) -> Diagnostic:
        self.last_error = str(diagnostic)
        logger.error(self.last_error)
        return diagnostic

    def _refuse(self, call: str) -> bool:
        # every public operation starts here, so a stale error never outlives it
        self.last_error = ""
        if not self.disabled:
            return False
        self._record(configuration(call, "RecordSet has no table", self.info))
        return True

    async def _run(
        self,
        statement: Statement,
        call: str,
        table: str,
        where: Optional[str],
        query_code: ErrorCode,
        transport_code: ErrorCode,
    ) -> Union[ExecutorResult, Diagnostic]:
        try:
            result = await self.executor.execute(statement.sql, list(statement.params))
        except TransportError as e:
            return self._record(Diagnostic(
                code=transport_code,
                call=call,
                sql=statement.nice(),
                params=list(statement.params),
                info=self.info,
                table=table,
                where=where,
                status=e.status_text,
                response=e.body,
                detail=e.detail,
            ))
        if not result.ok:
            return self._record(Diagnostic(
                code=query_code,
                call=call,
                message=result.error or "",
                sql=statement.sql,
                params=list(statement.params),
                info=self.info,
                table=table,
                where=where,
            ))
        if result.nice_sql:
            # executor's version has clientip()/serverip() filled in
            self.last_query = result.nice_sql
        return result

    async def _fetch(self, statement, call, table, where, query_code, transport_code, expect_rows=True) -> bool:
        result = await self._run(statement, call, table, where, query_code, transport_code)
        if isinstance(result, Diagnostic):
            return False
        if not result.data and expect_rows:
            logger.warning("Loaded no data %s", self.info)
        self.result.absorb(result.data)
        return True

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait(self) -> bool:
        """Wait for background operations; True if all of them succeeded."""
        if not self._pending:
            return True
        results = await asyncio.gather(*list(self._pending))
        return all(results)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------
    async def discover_primary_key(self) -> Optional[str]:
        if self._refuse(describe_call(self.info, "discover_primary_key")):
            return None
        base = base_table(self._tables[0])
        pk = await discover_primary_key(self.executor, base, self.dialect)
        if 0 in self._joined:
            pk = f"{base}.{pk}"
        self._primary_keys[0] = pk
        self.pk_discovered = True
        return pk

    async def join(self, table: Optional[str], left: Optional[str] = None, right: Optional[str] = None,
                   join_type: Optional[str] = None) -> bool:
        """Join another table onto the current slot.

        ``rs.join("users", "id", "created_by", "left")`` appends
        ``LEFT JOIN users ON users.id = <table>.created_by``.
        """
        call = describe_call(self.info, "join", table, left, right, join_type)
        if self._refuse(call):
            return False
        if not table:
            self._record(configuration(call, "Table is not defined", self.info))
            return False

        index = len(self._tables) - 1
        base = base_table(self._tables[index])
        pk_column = self._primary_keys[index].rsplit(".", 1)[-1]

        if not left and not right:
            other_pk = await discover_primary_key(self.executor, table, self.dialect)
            left = f"{table}.{other_pk}"
            right = f"{base}.{pk_column}"
        else:
            if not right:
                right = f"{base}.{left}"
            if not left:
                left = f"{table}.{right.rsplit('.', 1)[-1]}"
            if "." not in left and len(left) < MAX_REFERENCE_LENGTH:
                left = f"{table}.{left}"
            if "." not in right and len(right) < MAX_REFERENCE_LENGTH:
                right = f"{base}.{right}"

        join_type = (join_type or "INNER").strip()
        if join_type.upper().endswith(" JOIN"):
            join_type = join_type[: -len(" JOIN")].strip()
        if join_type.upper() in JOIN_TYPES:
            join_type = join_type.upper()
        else:
            logger.warning('Join type "%s" should be one of: inner, outer, left, right', join_type)

        # qualify the key, it is ambiguous once another table is in the FROM clause
        if "." not in self._primary_keys[index]:
            self._primary_keys[index] = f"{base}.{pk_column}"
        self._joined.add(index)

        self._tables[index] += f" {join_type} JOIN {table} ON {left} = {right}"
        return True

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------
    async def load(self, where=None, params=None, columns=None, sort=None, group=None, limit=None,
                   table_index: int = 0, background: bool = False):
        """SELECT rows into this RecordSet.

        Takes the options positionally or as one ``LoadOptions`` (or dict):

            await calendar.load(LoadOptions(
                where="status != ? and jobcat = ?",
                params=["Complete", "BIKE"],
                columns=["jobid", "position"],
            ))

        Returns True once rows are in; with ``background=True`` returns the
        task doing the work instead.
        """
        try:
            if isinstance(where, LoadOptions):
                opts = where
            elif isinstance(where, dict):
                opts = LoadOptions.model_validate(where)
            else:
                opts = LoadOptions(
                    where=where, params=params, columns=columns, sort=sort, group=group,
                    limit=limit, table_index=table_index, background=background,
                )
        except ValidationError as e:
            self._record(configuration(describe_call(self.info, "load", where), f"Invalid load options: {e}", self.info))
            return False

        call = describe_call(self.info, "load", opts.where, opts.params, opts.columns, opts.sort, opts.group, opts.limit)
        if self._refuse(call):
            return False

        index = opts.table_index
        if not 0 <= index < len(self._tables) or not self._tables[index]:
            self._record(configuration(call, "Trying to load data from an unknown table", self.info))
            return False
        table = self._tables[index]

        where, params = prepare_filter(opts.where, opts.params, self.info)
        statement = SelectQuery(
            table=table,
            columns=project_columns(opts.columns, self._primary_keys[index]),
            where=where,
            params=tuple(params),
            group=as_list(opts.group),
            sort=as_list(opts.sort),
            limit=opts.limit,
        ).compile()
        self.last_query = statement.nice()

        work = self._fetch(statement, call, base_table(table), where, ErrorCode.LOAD_QUERY, ErrorCode.LOAD_TRANSPORT)
        if opts.background:
            return self._spawn(work)
        return await work

    async def union(self, table: Optional[str], pk: Optional[str] = None, where=None, params=None, columns=None) -> bool:
        """Load rows from another table into the same rows (use squash() after)."""
        if self._refuse(describe_call(self.info, "union", table, pk, where, params)):
            return False
        if pk is None and table:
            pk = await discover_primary_key(self.executor, table, self.dialect)
        self._tables.append(table or "")
        self._primary_keys.append(pk or DEFAULT_PK)
        return await self.load(where, params, columns, table_index=len(self._tables) - 1)

    def squash(self, ignore: Union[None, str, Sequence[str]] = None) -> bool:
        """Collapse all rows into row 0, keeping the most defined value per column.

        ``[["A", 1, 0, 79.95], ["A", 0, 1, 0]]`` becomes ``["A", 1, 1, 79.95]``.
        """
        return self.result.squash(ignore)

    def get(self, name: Union[None, int, str] = None):
        return self.result.get(name)

    def column(self, name: str) -> List[Any]:
        return self.result.column(name)

    def set(self, column: str, value: Any, row_index: int = 0, table: Optional[str] = None) -> bool:
        """Write a value; use ``NOW``, ``CLIENTIP`` etc. for SQL-side values."""
        if row_index is None or row_index == "":
            row_index = 0
        call = describe_call(self.info, "set", column, value, row_index)
        if self._refuse(call):
            return False
        if not column:
            self._record(configuration(call, f"Trying to set value {value} in blank column for row {row_index}", self.info))
            return False
        column = str(column)
        if any(ch in column for ch in ("'", '"', ",")):
            logger.warning("Check the column name! Its probably wrong! %s", column)

        if table:
            known = [base_table(t) for t in self._tables]
            if table not in known:
                self._record(configuration(call, f'Unknown table "{table}", expected one of: {", ".join(known)}', self.info))
                return False
            self._owners[column] = table

        return self.result.set(column, value, int(row_index))

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def _plan_save(self) -> List[tuple]:
        plan = []
        for index, reference in enumerate(self._tables):
            if not reference:
                logger.error("Table is empty")
                continue
            table = base_table(reference)
            pk = self._primary_keys[index]
            pk_column = pk.rsplit(".", 1)[-1]
            columns = tuple(c for c in self.result.columns if self._owners.get(c, table) == table)

            for row_index, row in enumerate(self.result.rows):
                if not row:
                    # gap left by set() past the last row
                    continue
                if _is_null(row.get(pk_column)):
                    statement = InsertQuery(table, columns, row).compile()
                else:
                    if " JOIN " in reference.upper():
                        logger.warning("Please check this SQL for errors:\nUPDATE %s", reference)
                    statement = UpdateQuery(reference, pk, columns, row).compile()
                plan.append((table, pk_column, row_index, statement))
        return plan

    async def save(self) -> bool:
        """INSERT rows without a key value, UPDATE the rest.

        Statements go out concurrently; True only if every one succeeded.
        Per-statement outcomes are kept in ``last_save``.
        """
        call = describe_call(self.info, "save")
        if self._refuse(call):
            return False
        if self.is_empty():
            logger.warning("No data to save %s", self.info)
            return False

        try:
            plan = self._plan_save()
        except ConfigurationError as e:
            self.last_save = SaveReport()
            self._record(configuration(call, str(e), self.info))
            return False

        async def dispatch(table, pk_column, row_index, statement):
            self.last_query = statement.nice()
            logger.info("%s is sending this to the executor: %s", self.info, self.last_query)
            result = await self._run(statement, call, table, None, ErrorCode.SAVE_QUERY, ErrorCode.SAVE_TRANSPORT)
            if isinstance(result, Diagnostic):
                return StatementResult(table, row_index, statement, False, error=str(result))
            logger.info("Table %s %sd successfully", table, statement.verb.lower())
            return StatementResult(table, row_index, statement, True, last_insert_id=result.last_insert_id)

        results = await asyncio.gather(*(dispatch(*step) for step in plan))

        for (table, pk_column, row_index, statement), outcome in zip(plan, results):
            if outcome.success and statement.verb == "INSERT" and outcome.last_insert_id is not None:
                if _is_null(self.result.rows[row_index].get(pk_column)):
                    self.result.set(pk_column, outcome.last_insert_id, row_index)

        self.last_save = SaveReport(list(results))
        if self.debug:
            logger.debug("%s", self.render())
        return self.last_save.success

    async def delete(self, where: Optional[str] = None, params: Any = None) -> bool:
        call = describe_call(self.info, "delete", where, params)
        if self._refuse(call):
            return False
        table = base_table(self._tables[0])

        where, params = prepare_filter(where, params, self.info)
        statement = DeleteQuery(table, where, tuple(params)).compile()
        self.last_query = statement.nice()

        result = await self._run(statement, call, table, where, ErrorCode.DELETE_QUERY, ErrorCode.DELETE_TRANSPORT)
        if self.debug:
            logger.debug("%s", self.render())
        return not isinstance(result, Diagnostic)

    async def raw_sql(self, sql: str, params: Any = None, background: Optional[bool] = None):
        """Run SQL as written. Non-SELECT statements run in the background by default."""
        call = describe_call(self.info, "raw_sql", sql, params)
        if self._refuse(call):
            return False
        if not sql or not sql.strip():
            self._record(configuration(call, "No SQL to run", self.info))
            return False

        if background is None:
            background = sql.lstrip()[:6].lower() != "select"
        statement = Statement(sql, tuple(normalize_params(params)))
        self.last_query = statement.nice()

        work = self._fetch(
            statement, call, base_table(self._tables[0]), None,
            ErrorCode.RAW_QUERY, ErrorCode.RAW_TRANSPORT, expect_rows=False,
        )
        if background:
            return self._spawn(work)
        return await work

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def render(self) -> str:
        out = f"tables: {','.join(self._tables)}\n"
        out += f"pks: {','.join(self._primary_keys)}\n"
        out += f"sql: {self.last_query}\n"
        out += "data:\n"
        out += self.result.render()
        return out

    def to_dataframe(self):
        return self.result.to_dataframe()
