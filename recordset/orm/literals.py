"""SQL literal markers.

A ``Literal`` is written into the statement text as-is instead of being
bound as a parameter, e.g. ``rs.set("updated", NOW)``. Plain strings such
as ``"now()"`` are ordinary data.
"""
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Literal:
    """A SQL expression passed through unparameterized."""

    expr: str

    def __str__(self) -> str:
        return self.expr

    @property
    def name(self) -> str:
        return self.expr.lower()

    @property
    def temporal(self) -> bool:
        return self.name in _TEMPORAL

    @property
    def is_null(self) -> bool:
        return self.name == "null"


NOW = Literal("now()")
CURDATE = Literal("curdate()")
CURTIME = Literal("curtime()")
SYSDATE = Literal("sysdate()")
UNIX_TIMESTAMP = Literal("unix_timestamp()")
CLIENTIP = Literal("clientip()")
SERVERIP = Literal("serverip()")
NULL = Literal("NULL")

_TEMPORAL = {"now()", "curdate()", "curtime()", "sysdate()", "unix_timestamp()"}

def encode(value: Any) -> Any:
    """Turn a row value into something JSON can carry to the executor."""
    if isinstance(value, Literal):
        return value.expr
    return value
