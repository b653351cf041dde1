"""
Statement building.

Every statement is an immutable value compiled to ``Statement(sql, params)``.
The RecordSet feeds its slot state in here; nothing in this module talks
to an executor.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from recordset.core.diagnostics import ConfigurationError
from recordset.orm.literals import Literal

logger = logging.getLogger(__name__)

# Unqualified references longer than this are taken to be expressions
MAX_REFERENCE_LENGTH = 50

JOIN_TYPES = {
    "LEFT", "RIGHT", "INNER", "OUTER",
    "LEFT INNER", "LEFT OUTER", "RIGHT INNER", "RIGHT OUTER",
}

_TRAILING_EQ = re.compile(r"\s*=\s*\?\s*$")


@dataclass(frozen=True)
class Statement:
    sql: str
    params: Tuple[Any, ...] = ()

    @property
    def verb(self) -> str:
        return self.sql.split(" ", 1)[0].upper()

    def nice(self) -> str:
        return nice_sql(self.sql, self.params)


def base_table(reference: str) -> str:
    """First word of a table reference: ``"a INNER JOIN b ON ..."`` -> ``"a"``."""
    return reference.strip().split(" ")[0] if reference else ""


def as_list(value: Union[None, str, Sequence[str]]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def normalize_where(where: Optional[str]) -> Optional[str]:
    """A bare column name becomes an equality placeholder."""
    if not where:
        return None
    if "=" not in where and "?" not in where:
        where += " = ?"
    return where


def normalize_params(params: Any) -> List[Any]:
    if params is None:
        return []
    if isinstance(params, (list, tuple)):
        return list(params)
    return [params]


def is_null_params(params: Sequence[Any]) -> bool:
    """True when the caller supplied nothing usable to compare against."""
    if len(params) == 0:
        return True
    if len(params) == 1:
        value = params[0]
        if value is None or value == "":
            return True
        if isinstance(value, Literal) and value.is_null:
            return True
        if isinstance(value, str) and value.lower() == "null":
            return True
    return False


def prepare_filter(where: Optional[str], params: Any, info: str = "") -> Tuple[Optional[str], List[Any]]:
    """Normalize a where clause and its params.

    With a where clause but no params, a trailing ``= ?`` becomes
    ``IS NULL``: ``load("jobid")`` selects rows whose jobid is null.
    """
    where = normalize_where(where)
    params = normalize_params(params)
    if where and is_null_params(params):
        where = _TRAILING_EQ.sub(" IS NULL", where)
        params = []
        logger.warning("One of the params is null. Are you sure this is right? %s", info)
    return where, params


def has_column(columns: str, column: str) -> bool:
    name = column.rsplit(".", 1)[-1]
    for token in columns.split(","):
        token = token.strip()
        if token in (column, name) or token.rsplit(".", 1)[-1] == name:
            return True
    return False


def project_columns(columns: Union[None, str, Sequence[str]], pk_reference: str) -> str:
    """Column list for a SELECT, with the primary key always present."""
    columns = as_list(columns)
    if not columns or columns in ("*", "null"):
        return "*"
    if pk_reference and not has_column(columns, pk_reference):
        columns = f"{pk_reference}, {columns}"
    return columns


@dataclass(frozen=True)
class SelectQuery:
    table: str
    columns: str = "*"
    where: Optional[str] = None
    params: Tuple[Any, ...] = ()
    group: Optional[str] = None
    sort: Optional[str] = None
    limit: Optional[int] = None

    def compile(self) -> Statement:
        if not self.table:
            raise ConfigurationError("Trying to load data from an unknown table")
        sql = f"SELECT {self.columns} FROM {self.table}"
        if self.where:
            sql += f" WHERE {self.where}"
        if self.group:
            sql += f" GROUP BY {self.group}"
        if self.sort:
            sql += f" ORDER BY {self.sort}"
        if self.limit is not None:
            sql += f" LIMIT {self.limit}"
        return Statement(sql, tuple(self.params))


@dataclass(frozen=True)
class DeleteQuery:
    table: str
    where: Optional[str] = None
    params: Tuple[Any, ...] = ()

    def compile(self) -> Statement:
        if not self.table:
            raise ConfigurationError("Trying to delete data from an unknown table")
        sql = f"DELETE FROM {self.table}"
        if self.where:
            sql += f" WHERE {self.where}"
        return Statement(sql, tuple(self.params))


@dataclass(frozen=True)
class InsertQuery:
    table: str
    columns: Tuple[str, ...]
    row: Dict[str, Any] = field(default_factory=dict, hash=False)

    def compile(self) -> Statement:
        if not self.columns:
            raise ConfigurationError(f"Nothing to insert into {self.table}")
        values = []
        params = []
        for column in self.columns:
            value = self.row.get(column)
            if isinstance(value, Literal):
                values.append(value.expr)
            else:
                values.append("?")
                params.append(value)
        sql = f"INSERT INTO {self.table} ({', '.join(self.columns)}) VALUES ({', '.join(values)})"
        return Statement(sql, tuple(params))


@dataclass(frozen=True)
class UpdateQuery:
    table: str
    pk: str
    columns: Tuple[str, ...]
    row: Dict[str, Any] = field(default_factory=dict, hash=False)

    def compile(self) -> Statement:
        pk_column = self.pk.rsplit(".", 1)[-1]
        assignments = []
        params = []
        for column in self.columns:
            if column in (pk_column, self.pk):
                continue
            value = self.row.get(column)
            if value is None:
                continue
            if isinstance(value, Literal) and (value.temporal or value.is_null):
                assignments.append(f"{column} = {value.expr}")
            else:
                # clientip()/serverip() travel as params; the executor substitutes them
                assignments.append(f"{column} = ?")
                params.append(value)
        if not assignments:
            raise ConfigurationError(
                f"Please check this SQL for errors: UPDATE {self.table} SET  WHERE {self.pk} = ?"
            )
        params.append(self.row.get(pk_column))
        sql = f"UPDATE {self.table} SET {', '.join(assignments)} WHERE {self.pk} = ?"
        return Statement(sql, tuple(params))


def nice_sql(sql: str, params: Optional[Sequence[Any]] = None) -> str:
    """Substitute params into placeholders for display.

    Strings are quoted, everything else is written as-is. Not for
    execution: nothing is escaped.
    """
    if not params:
        return sql
    pieces = sql.split("?")
    if len(pieces) - 1 != len(params):
        logger.warning("There is an imbalance of params!\nSQL: %s\nParams: %s", sql, ",".join(str(p) for p in params))
    out = [pieces[0]]
    for i, piece in enumerate(pieces[1:]):
        if i < len(params):
            value = params[i]
            if isinstance(value, str):
                out.append(f"'{value}'")
            elif value is None:
                out.append("NULL")
            else:
                out.append(str(value))
        else:
            out.append("?")
        out.append(piece)
    return "".join(out)
