"""Session state machine driving one connection to the graph database."""

from __future__ import annotations

import enum
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple, Type

from . import raw as _raw
from .config import ConnectParams
from .cursor import Cursor
from .errors import (
    AlreadyExecutingError,
    AlreadyFetchingError,
    ConnectionBadError,
    ConnectionClosedError,
    ConnectionError,
    NotExecutingError,
    NotInTransactionError,
    ProgrammingError,
    ProtocolError,
    StateError,
    split_error_code,
    wrap_transport_error,
)
from .params import QueryParam, encode_params
from .raw import RawValue
from .transport import FETCH_DONE, FETCH_ROW, STATUS_OK, Transport
from .types import Record, Value
from .values import decode_columns, decode_record, decode_summary

_logger = logging.getLogger(__name__)


class ConnectionStatus(enum.Enum):
    READY = "Ready"
    IN_TRANSACTION = "InTransaction"
    EXECUTING = "Executing"
    FETCHING = "Fetching"
    CLOSED = "Closed"
    BAD = "Bad"


_READY = ConnectionStatus.READY
_IN_TRANSACTION = ConnectionStatus.IN_TRANSACTION
_EXECUTING = ConnectionStatus.EXECUTING
_FETCHING = ConnectionStatus.FETCHING
_CLOSED = ConnectionStatus.CLOSED
_BAD = ConnectionStatus.BAD

# Error raised when an operation is attempted from a state that does not allow it
_STATE_ERRORS: Dict[ConnectionStatus, Tuple[Type[StateError], str]] = {
    _READY: (NotExecutingError, "no query is executing"),
    _IN_TRANSACTION: (NotExecutingError, "no query is executing in the open transaction"),
    _EXECUTING: (AlreadyExecutingError, "a query is already executing"),
    _FETCHING: (AlreadyFetchingError, "results are being fetched"),
    _CLOSED: (ConnectionClosedError, "connection is closed"),
    _BAD: (ConnectionBadError, "connection is in a bad state"),
}


class Connection:
    """One logical session with the server.

    Calls are strictly sequential: at most one query is outstanding and every
    operation blocks until the transport answers. ``lazy`` selects whether
    rows are pulled one at a time on demand or all at once when the query is
    executed. With ``autocommit`` off the first ``execute`` opens a
    transaction that stays open until ``commit`` or ``rollback``.
    """

    def __init__(
        self,
        transport: Transport,
        handle: Any,
        *,
        lazy: bool = True,
        autocommit: bool = False,
    ) -> None:
        self._transport = transport
        self._handle = handle
        self._released = False
        self._status = _READY
        self._lazy = bool(lazy)
        self._autocommit = bool(autocommit)
        self._arraysize = 1
        self._columns: Optional[List[str]] = None
        self._summary: Optional[Dict[str, Value]] = None
        self._buffer: Deque[RawValue] = deque()

    @classmethod
    def connect(cls, params: ConnectParams, transport: Transport) -> "Connection":
        """Validate ``params`` and open a session through ``transport``."""
        params.validate()
        try:
            status, handle = transport.connect(params.to_transport_options())
        except Exception as err:
            raise wrap_transport_error(err, default=ConnectionError) from err
        if status != STATUS_OK:
            message = transport.error(handle) if handle is not None else ""
            if handle is not None:
                transport.close(handle)
            raise ConnectionError(message or "failed to connect to the server")
        _logger.debug(
            "connected to %s:%s (lazy=%s, autocommit=%s)",
            params.host or params.address,
            params.port,
            params.lazy,
            params.autocommit,
        )
        return cls(transport, handle, lazy=params.lazy, autocommit=params.autocommit)

    # ------------------------------------------------------------------
    # Properties

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def lazy(self) -> bool:
        return self._lazy

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    @property
    def arraysize(self) -> int:
        return self._arraysize

    @property
    def columns(self) -> Optional[List[str]]:
        """Column names returned by the last ``execute``."""
        return list(self._columns) if self._columns is not None else None

    @property
    def summary(self) -> Optional[Dict[str, Value]]:
        """Summary of the last completed result, ``None`` until one is received."""
        return self._summary

    def set_lazy(self, lazy: bool) -> None:
        self._require_ready("set_lazy")
        self._lazy = bool(lazy)

    def set_autocommit(self, autocommit: bool) -> None:
        self._require_ready("set_autocommit")
        self._autocommit = bool(autocommit)

    def set_arraysize(self, arraysize: int) -> None:
        if arraysize < 1:
            raise ValueError("arraysize must be at least 1")
        self._arraysize = arraysize

    def cursor(self) -> Cursor:
        return Cursor(self)

    # ------------------------------------------------------------------
    # State handling

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is not self._status:
            _logger.debug("connection state %s -> %s", self._status.value, status.value)
            self._status = status

    def _state_error(self, operation: str) -> StateError:
        error_class, reason = _STATE_ERRORS[self._status]
        return error_class(
            f"cannot {operation}: {reason}", operation=operation, state=self._status.value
        )

    def _require(self, operation: str, *allowed: ConnectionStatus) -> None:
        if self._status not in allowed:
            raise self._state_error(operation)

    def _require_ready(self, operation: str) -> None:
        if self._status is not _READY:
            raise ProgrammingError(
                f"{operation} is only allowed while the connection is ready "
                f"(state: {self._status.value})"
            )

    def _result_done(self) -> None:
        self._set_status(_READY if self._autocommit else _IN_TRANSACTION)

    def _discard_buffered(self) -> None:
        """Drop the undelivered rows of an eager result."""
        if not self._lazy and self._status is _EXECUTING:
            self._buffer.clear()
            self._result_done()

    # ------------------------------------------------------------------
    # Transport calls

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Invoke a transport method; anything it raises leaves the session Bad."""
        try:
            return fn(self._handle, *args)
        except Exception as err:
            self._set_status(_BAD)
            _logger.error("transport %s raised: %s", operation, err)
            if isinstance(err, ProtocolError):
                raise
            code, clean_message = split_error_code(str(err))
            raise ProtocolError(clean_message, server_code=code) from err

    def _fail(self, operation: str) -> ProtocolError:
        message = self._transport.error(self._handle) or f"{operation} failed"
        self._set_status(_BAD)
        _logger.error("%s failed: %s", operation, message)
        code, clean_message = split_error_code(message)
        return ProtocolError(clean_message, server_code=code)

    def _run(self, query: str, params: Optional[RawValue]) -> List[str]:
        status, raw_columns = self._call("run", self._transport.run, query, params)
        if status != STATUS_OK:
            raise self._fail("run")
        if raw_columns is None:
            return []
        return decode_columns(raw_columns)

    def _pull(self, n: int) -> None:
        """Request up to ``n`` rows, or every remaining row when ``n`` is 0."""
        request = None if n == 0 else _raw.make_map({"n": _raw.make_int(n)})
        _logger.debug("pull n=%s", n or "all")
        status = self._call("pull", self._transport.pull, request)
        if status != STATUS_OK:
            raise self._fail("pull")

    def _fetch(self) -> Tuple[Optional[RawValue], bool]:
        """Fetch one undecoded row.

        Returns ``(raw_row, False)`` for a row, or ``(None, has_more)`` once the
        pulled batch is complete; the summary is captured at that point.
        """
        status, payload = self._call("fetch", self._transport.fetch)
        if status == FETCH_ROW:
            return payload, False
        if status == FETCH_DONE:
            self._summary = decode_summary(payload)
            return None, bool(self._summary.get("has_more", False))
        raise self._fail("fetch")

    def _drain(self) -> List[RawValue]:
        rows: List[RawValue] = []
        has_more = True
        while has_more:
            self._pull(0)
            while True:
                raw_row, has_more = self._fetch()
                if raw_row is None:
                    break
                rows.append(raw_row)
        return rows

    # ------------------------------------------------------------------
    # Query execution

    def execute(self, query: str, params: Optional[Mapping[str, QueryParam]] = None) -> List[str]:
        """Submit ``query`` and return its column names.

        Without autocommit a ``BEGIN`` is issued first when no transaction is
        open. In eager mode every row is pulled before this returns.
        """
        self._require("execute", _READY, _IN_TRANSACTION)
        raw_params = encode_params(params)
        if not self._autocommit and self._status is _READY:
            _logger.debug("opening implicit transaction")
            self.execute_without_results("BEGIN")
            self._set_status(_IN_TRANSACTION)
        self._summary = None
        self._buffer.clear()
        self._columns = self._run(query, raw_params)
        self._set_status(_EXECUTING)
        if not self._lazy:
            self._buffer.extend(self._drain())
        return list(self._columns)

    def execute_without_results(self, query: str) -> None:
        """Run ``query`` and discard its rows. The state is left as it was."""
        self._require("execute", _READY, _IN_TRANSACTION)
        _logger.debug("executing %r without results", query)
        self._run(query, None)
        self._drain()

    def fetchone(self) -> Optional[Record]:
        """Return the next row, or ``None`` once the result is exhausted."""
        self._require("fetch", _EXECUTING, _FETCHING)
        if not self._lazy:
            if self._buffer:
                return decode_record(self._buffer.popleft())
            self._result_done()
            return None
        while True:
            if self._status is _EXECUTING:
                self._pull(1)
                self._set_status(_FETCHING)
            raw_row, has_more = self._fetch()
            if raw_row is not None:
                return decode_record(raw_row)
            if not has_more:
                self._result_done()
                return None
            self._set_status(_EXECUTING)

    def fetchmany(self, size: Optional[int] = None) -> List[Record]:
        if size is None:
            size = self._arraysize
        if size < 1:
            raise ValueError("fetchmany size must be at least 1")
        self._require("fetch", _EXECUTING, _FETCHING)
        rows: List[Record] = []
        for _ in range(size):
            record = self.fetchone()
            if record is None:
                break
            rows.append(record)
        return rows

    def fetchall(self) -> List[Record]:
        self._require("fetch", _EXECUTING, _FETCHING)
        rows: List[Record] = []
        while True:
            record = self.fetchone()
            if record is None:
                return rows
            rows.append(record)

    # ------------------------------------------------------------------
    # Transactions

    def commit(self) -> None:
        self._require("commit", _READY, _IN_TRANSACTION)
        if self._autocommit or self._status is not _IN_TRANSACTION:
            return
        self.execute_without_results("COMMIT")
        self._set_status(_READY)

    def rollback(self) -> None:
        self._require("rollback", _READY, _IN_TRANSACTION)
        if self._autocommit:
            return
        if self._status is not _IN_TRANSACTION:
            raise NotInTransactionError(
                "cannot rollback: not in transaction", operation="rollback", state=self._status.value
            )
        self.execute_without_results("ROLLBACK")
        self._set_status(_READY)

    # ------------------------------------------------------------------
    # Teardown

    def close(self) -> None:
        """Close the session and release the transport handle.

        Closing twice is a no-op. Closing while a query is in flight is a
        programming error; a Bad session can only be released by teardown.
        """
        if self._status is _CLOSED:
            return
        if self._status in (_EXECUTING, _FETCHING):
            raise ProgrammingError("cannot close the connection while a query is executing")
        if self._status is _BAD:
            raise self._state_error("close")
        self._release()

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self._buffer.clear()
        if self._status is not _BAD:
            self._set_status(_CLOSED)
        try:
            self._transport.close(self._handle)
        except Exception as err:
            raise wrap_transport_error(err) from err

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if self._status in (_READY, _IN_TRANSACTION):
                self.close()
        finally:
            self._release()

    def __del__(self) -> None:
        if not getattr(self, "_released", True):
            try:
                self._release()
            except Exception:  # noqa: BLE001 - nothing can be raised from a finalizer
                _logger.debug("failed to release transport handle", exc_info=True)


def connect(transport: Transport, params: Optional[ConnectParams] = None, **options: Any) -> Connection:
    """Open a session, either from ``params`` or from keyword options.

    >>> conn = connect(transport, host="localhost", lazy=False)
    """
    if params is None:
        params = ConnectParams.from_options(**options)
    elif options:
        raise TypeError("pass either a ConnectParams instance or keyword options, not both")
    return Connection.connect(params, transport)


__all__ = ["ConnectionStatus", "Connection", "connect"]
