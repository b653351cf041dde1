"""
Diagnostics for failed RecordSet operations.
Nothing here raises out of the public API; the RecordSet stores the
rendered diagnostic in ``last_error`` and returns False.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence


class ErrorCode(Enum):
    """Diagnostic codes, one per operation and failure kind"""
    CONFIGURATION = "ORM00"
    LOAD_QUERY = "ORM01"
    LOAD_TRANSPORT = "ORM02"
    SAVE_QUERY = "ORM03"
    SAVE_TRANSPORT = "ORM04"
    DELETE_QUERY = "ORM05"
    DELETE_TRANSPORT = "ORM06"
    RAW_QUERY = "ORM07"
    RAW_TRANSPORT = "ORM08"


class ConfigurationError(ValueError):
    """Raised while building a statement that must not be sent."""


_UNKNOWN_COLUMN = re.compile(r"(?:unknown column|no such column)[:\s]*['\"`]?([\w.]+)", re.IGNORECASE)


def unknown_column(text: Optional[str]) -> Optional[str]:
    """Return the offending column reference if ``text`` reads like an unknown-column error."""
    if not text:
        return None
    m = _UNKNOWN_COLUMN.search(text)
    if m:
        return m.group(1)
    if "column not found" in text.lower():
        return ""
    return None


def describe_call(info: str, method: str, *args: Any) -> str:
    """Render an operation the way the caller wrote it, e.g. ``product.load('code = ?', ['X1']);``"""
    parts = []
    for arg in args:
        if isinstance(arg, str):
            parts.append(f"'{arg}'")
        elif isinstance(arg, (list, tuple)):
            parts.append("[" + ", ".join(f'"{a}"' for a in arg) + "]")
        elif arg is None:
            parts.append("null")
        else:
            parts.append(str(arg))
    # trailing nulls add nothing
    while len(parts) > 2 and parts[-1] == "null":
        parts.pop()
    return f"{info}.{method}(" + ", ".join(parts) + ");"


@dataclass
class Diagnostic:
    code: ErrorCode
    call: str
    message: str = ""
    sql: str = ""
    params: List[Any] = field(default_factory=list)
    info: str = ""
    table: str = ""
    where: Optional[str] = None
    status: Optional[str] = None
    response: Optional[str] = None
    detail: Optional[str] = None

    @property
    def transport(self) -> bool:
        return self.status is not None or self.response is not None or self.detail is not None

    def hint(self) -> Optional[str]:
        """A friendlier message for unknown-column failures."""
        column = unknown_column(self.message) if self.message else None
        if column is None:
            column = unknown_column(self.response)
        if column is None:
            return None
        if column:
            return f'Column "{column}" does not exist in table "{self.table}" {self.info}'.rstrip()
        if self.where:
            bare = re.sub(r"\s*(=\s*\?|IS NULL)\s*$", "", self.where)
            return f"{self.table}.{bare} does not exist {self.info}".rstrip()
        return f'One of the requested columns does not exist in table "{self.table}" {self.info}'.rstrip()

    def __str__(self) -> str:
        lines = [f"Error {self.code.value} {self.call}"]
        if self.transport:
            lines.append(f"Status: {self.status}")
            lines.append(f"Response: {self.response}")
            lines.append(f"ErrorThrown: {self.detail}")
        elif self.message:
            lines.append(self.message)
        hint = self.hint()
        if hint:
            lines.append(f"Hint: {hint}")
        lines.append(f"SQL: {self.sql}")
        if self.params:
            lines.append("Params: " + ",".join(str(p) for p in self.params))
        lines.append(f"Info: {self.info}")
        return "\n".join(lines)


def configuration(call: str, message: str, info: str = "", sql: str = "", params: Sequence[Any] = ()) -> Diagnostic:
    return Diagnostic(code=ErrorCode.CONFIGURATION, call=call, message=message, info=info, sql=sql, params=list(params))
