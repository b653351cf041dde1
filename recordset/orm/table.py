import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from recordset.orm.literals import Literal

logger = logging.getLogger(__name__)

NULL_WIDTH = 4
NULL_TEXT = "<null>"

_MISSING = object()


def _width(value: Any) -> int:
    if value is None:
        return NULL_WIDTH
    return len(str(value))


def precedence(value: Any) -> int:
    """Squash order: missing < None < 0 < "" < anything else."""
    if value is _MISSING:
        return 1
    if value is None:
        return 2
    if isinstance(value, (int, float)) and value == 0:
        return 3
    if value == "":
        return 4
    return 5


def _row_index(name: Any) -> Optional[int]:
    if isinstance(name, bool):
        return None
    if isinstance(name, int):
        return name
    if isinstance(name, str) and name.strip().isdigit():
        return int(name)
    return None


class ResultTable:
    """Rows loaded or set on a RecordSet, with column bookkeeping."""

    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self.columns: List[str] = []
        self.widths: List[int] = []

    def __len__(self):
        return len(self.rows)

    def _track(self, column: str, value: Any = _MISSING):
        if column not in self.columns:
            self.columns.append(column)
            self.widths.append(len(column))
        if value is _MISSING:
            return
        i = self.columns.index(column)
        self.widths[i] = max(self.widths[i], _width(value))

    def absorb(self, rows: Iterable[Dict[str, Any]]) -> int:
        """Append executor rows; returns how many were added."""
        added = 0
        for row in rows:
            row = dict(row)
            self.rows.append(row)
            for column, value in row.items():
                self._track(column, value)
            added += 1
        return added

    def column(self, name: str) -> List[Any]:
        return [row.get(name) for row in self.rows]

    def get(self, name: Union[None, int, str] = None):
        """Rows, a row, or a column.

        A single-element column comes back as the element itself, so
        ``product.get("price")`` on a one-row result is the price. Use
        ``column()`` to always get a list.
        """
        if name is None:
            return self.rows

        index = _row_index(name)
        if index is not None:
            return self.rows[index] if 0 <= index < len(self.rows) else None

        name = str(name)
        if self.rows and name not in self.rows[0]:
            self._report_missing(name)

        values = self.column(name)
        if len(values) == 1:
            return values[0]
        return values

    def _report_missing(self, name: str):
        message = f'Column "{name}" does not exist in data. Did you mean '
        if len(self.columns) == 1:
            logger.error('%s"%s"?', message, self.columns[0])
            return
        matches = [c for c in self.rows[0] if c.lower() == name.lower()]
        if matches:
            message += f'"{matches[0]}"? Column names are case sensitive'
        else:
            message += "one of these: " + ",".join(self.rows[0].keys())
        logger.error(message)

    def set(self, column: str, value: Any, row_index: int = 0) -> bool:
        while len(self.rows) <= row_index:
            self.rows.append({})
        self._track(column, value)

        row = self.rows[row_index]
        old = row.get(column, _MISSING)
        if old is not _MISSING and old != "" and old != value:
            logger.info('rows[%d][%s] was "%s", now "%s"', row_index, column, old, value)
        row[column] = value
        return True

    def squash(self, ignore: Union[None, str, Sequence[str]] = None) -> bool:
        if isinstance(ignore, str):
            ignore = [c.strip() for c in ignore.split(",")]
        ignore = set(ignore or ())

        if self.rows:
            first = self.rows[0]
            for column in self.columns:
                if column in ignore:
                    continue
                for row in self.rows[1:]:
                    value = row.get(column, _MISSING)
                    if precedence(value) > precedence(first.get(column, _MISSING)):
                        first[column] = value
            del self.rows[1:]
        return True

    def render(self) -> str:
        out = " # " + "".join(c.ljust(w) + " " for c, w in zip(self.columns, self.widths)) + "\n"
        for i, row in enumerate(self.rows):
            out += f" {i} "
            for column, width in zip(self.columns, self.widths):
                value = row.get(column)
                text = NULL_TEXT if value is None else str(value)
                out += text.ljust(width) + " "
            out += "\n"
        return out

    def to_dataframe(self) -> pd.DataFrame:
        records = [
            {c: (str(v) if isinstance(v, Literal) else v) for c, v in row.items()}
            for row in self.rows
        ]
        return pd.DataFrame(records, columns=self.columns)
