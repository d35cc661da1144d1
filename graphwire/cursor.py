"""DB-API flavoured cursor over a connection."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from .errors import (
    AlreadyExecutingError,
    CursorClosedError,
    EncodingError,
    NotExecutingError,
    ProgrammingError,
    StateError,
)
from .types import Record

if TYPE_CHECKING:
    from .connection import Connection
    from .params import QueryParam


class CursorStatus(enum.Enum):
    READY = "Ready"
    EXECUTING = "Executing"
    CLOSED = "Closed"


class Cursor:
    """Stateful view over a borrowed connection.

    ``rownumber`` is the zero based index of the last delivered row and starts
    at -1. In eager mode the rows pulled by ``execute`` are kept here and
    served in slices.
    """

    def __init__(self, connection: "Connection") -> None:
        self._connection = connection
        self._status = CursorStatus.READY
        self._arraysize = connection.arraysize
        self._lazy = connection.lazy
        self._cached: List[Record] = []
        self._rownumber = -1
        self._columns: Optional[List[str]] = None

    @property
    def status(self) -> CursorStatus:
        return self._status

    @property
    def connection(self) -> "Connection":
        return self._connection

    @property
    def rownumber(self) -> int:
        return self._rownumber

    @property
    def columns(self) -> List[str]:
        if self._columns is None:
            raise StateError("columns not available", operation="columns", state=self._status.value)
        return list(self._columns)

    @property
    def arraysize(self) -> int:
        return self._arraysize

    @arraysize.setter
    def arraysize(self, value: int) -> None:
        if value < 1:
            raise ValueError("arraysize must be at least 1")
        self._arraysize = value

    def _reset(self) -> None:
        self._cached = []
        self._rownumber = -1
        self._columns = None
        self._status = CursorStatus.READY

    def _assert_open(self, operation: str) -> None:
        if self._status is CursorStatus.CLOSED:
            raise CursorClosedError("cursor is closed", operation=operation, state=self._status.value)

    def _assert_executing(self, operation: str) -> None:
        self._assert_open(operation)
        if self._status is not CursorStatus.EXECUTING:
            raise NotExecutingError(
                f"cannot {operation}: cursor is not executing", operation=operation, state=self._status.value
            )

    def execute(self, query: str, params: Optional[Mapping[str, "QueryParam"]] = None) -> None:
        self._assert_open("execute")
        if self._status is CursorStatus.EXECUTING:
            raise AlreadyExecutingError(
                "cursor is executing", operation="execute", state=self._status.value
            )
        self._reset()
        self._lazy = self._connection.lazy
        self._columns = self._connection.execute(query, params)
        self._status = CursorStatus.EXECUTING
        if not self._lazy:
            try:
                self._cached = self._connection.fetchall()
            except EncodingError:
                self._status = CursorStatus.READY
                self._connection._discard_buffered()
                raise

    def fetchone(self) -> Optional[Record]:
        self._assert_executing("fetchone")
        if not self._lazy:
            idx = self._rownumber + 1
            if idx < len(self._cached):
                self._rownumber = idx
                return self._cached[idx]
            self._status = CursorStatus.READY
            return None
        record = self._connection.fetchone()
        if record is None:
            self._status = CursorStatus.READY
            return None
        self._rownumber += 1
        return record

    def fetchmany(self, size: Optional[int] = None) -> List[Record]:
        """Return up to ``size`` rows (default ``arraysize``).

        A batch shorter than requested means the result is exhausted; after a
        batch that came back exactly full the next call returns ``[]``.
        """
        amount = self._arraysize if size is None else size
        if amount < 1:
            raise ValueError("fetchmany size must be at least 1")
        self._assert_executing("fetchmany")
        if not self._lazy:
            start = self._rownumber + 1
            end = min(len(self._cached), start + amount)
            batch = self._cached[start:end]
            self._rownumber = end - 1
            if end - start < amount:
                self._status = CursorStatus.READY
            return batch
        batch: List[Record] = []
        for _ in range(amount):
            record = self._connection.fetchone()
            if record is None:
                self._status = CursorStatus.READY
                break
            self._rownumber += 1
            batch.append(record)
        return batch

    def fetchall(self) -> List[Record]:
        self._assert_executing("fetchall")
        if not self._lazy:
            rows = self._cached[self._rownumber + 1:]
            self._rownumber = len(self._cached) - 1
        else:
            rows = self._connection.fetchall()
            self._rownumber += len(rows)
        self._status = CursorStatus.READY
        return rows

    def close(self) -> None:
        if self._status is CursorStatus.CLOSED:
            return
        if self._status is CursorStatus.EXECUTING:
            raise ProgrammingError("cannot close cursor while executing")
        self._reset()
        self._status = CursorStatus.CLOSED

    def __iter__(self) -> "Cursor":
        return self

    def __next__(self) -> Record:
        record = self.fetchone()
        if record is None:
            raise StopIteration
        return record

    def __enter__(self) -> "Cursor":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None and self._status is CursorStatus.EXECUTING:
            # the borrowed connection is left as it is; only local state is dropped
            self._reset()
            self._status = CursorStatus.CLOSED
            return
        self.close()


__all__ = ["CursorStatus", "Cursor"]
