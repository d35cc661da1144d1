from __future__ import annotations

import re
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from graphwire import Connection, connect
from graphwire import raw
from graphwire.raw import RawValue
from graphwire.transport import FETCH_DONE, FETCH_ROW, STATUS_OK
from graphwire.values import decode, encode

_PARAM_REGEX = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")

Rows = Union[Sequence[Sequence[Any]], Callable[[Dict[str, Any]], Sequence[Sequence[Any]]]]


class _Result:
    def __init__(self, rows: List[RawValue], summary: Dict[str, Any]) -> None:
        self.rows: Deque[RawValue] = deque(rows)
        self.summary = summary
        self.window = 0


class FakeTransport:
    """In-memory server speaking the transport protocol.

    Results are scripted per query text. Statements without a script run
    successfully with no columns and no rows. A ``$name`` in the query text
    without a matching parameter fails the run, the way a server does.
    """

    def __init__(self) -> None:
        self.scripts: Dict[str, Tuple[List[str], Rows, Dict[str, Any]]] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.queries: List[str] = []
        self.closed: List[Any] = []
        self.connect_options: Optional[Dict[str, Any]] = None
        self.connect_status = STATUS_OK
        self.connect_handle: Any = "session-1"
        self.last_error = ""
        self._failures: Dict[str, str] = {}
        self._raises: Dict[str, BaseException] = {}
        self._result: Optional[_Result] = None

    # scripting

    def script(
        self,
        query: str,
        columns: Sequence[str],
        rows: Rows = (),
        summary: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.scripts[query] = (list(columns), rows, dict(summary or {}))

    def fail_next(self, operation: str, message: str) -> None:
        self._failures[operation] = message

    def raise_next(self, operation: str, err: BaseException) -> None:
        self._raises[operation] = err

    def _check(self, operation: str) -> Optional[int]:
        err = self._raises.pop(operation, None)
        if err is not None:
            raise err
        message = self._failures.pop(operation, None)
        if message is not None:
            self.last_error = message
            return -1
        return None

    # transport protocol

    def connect(self, options: Dict[str, Any]) -> Tuple[int, Any]:
        self.calls.append(("connect",))
        self.connect_options = options
        if self.connect_status != STATUS_OK:
            return self.connect_status, self.connect_handle
        return STATUS_OK, self.connect_handle

    def run(self, handle: Any, query: str, params: Optional[RawValue]) -> Tuple[int, Optional[RawValue]]:
        self.calls.append(("run", query, params))
        failed = self._check("run")
        if failed is not None:
            return failed, None
        self.queries.append(query)
        supplied = decode(params) if params is not None else {}
        for name in _PARAM_REGEX.findall(query):
            if name not in supplied:
                self.last_error = f"Parameter ${name} not provided."
                return -1, None
        columns, rows, summary = self.scripts.get(query, ([], (), {}))
        if callable(rows):
            rows = rows(supplied)
        raw_rows = [raw.make_list([encode(value) for value in row]) for row in rows]
        self._result = _Result(raw_rows, summary)
        return STATUS_OK, raw.make_list([raw.make_string(column) for column in columns])

    def pull(self, handle: Any, request: Optional[RawValue]) -> int:
        self.calls.append(("pull", None if request is None else decode(request)))
        failed = self._check("pull")
        if failed is not None:
            return failed
        if self._result is None:
            self.last_error = "There is no result to pull."
            return -1
        if request is None:
            self._result.window = len(self._result.rows)
        else:
            self._result.window = decode(request)["n"]
        return STATUS_OK

    def fetch(self, handle: Any) -> Tuple[int, Optional[RawValue]]:
        self.calls.append(("fetch",))
        failed = self._check("fetch")
        if failed is not None:
            return failed, None
        result = self._result
        if result is None:
            self.last_error = "There is no result to fetch."
            return -1, None
        if result.window > 0 and result.rows:
            result.window -= 1
            return FETCH_ROW, result.rows.popleft()
        has_more = bool(result.rows)
        if not has_more:
            self._result = None
        summary = dict(result.summary, has_more=has_more)
        return FETCH_DONE, encode(summary)

    def error(self, handle: Any) -> str:
        return self.last_error

    def close(self, handle: Any) -> None:
        self.calls.append(("close",))
        self.closed.append(handle)

    # helpers for assertions

    def pulls(self) -> List[Any]:
        return [call[1] for call in self.calls if call[0] == "pull"]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def open_connection(transport: FakeTransport) -> Callable[..., Connection]:
    def _open(**options: Any) -> Connection:
        options.setdefault("host", "localhost")
        return connect(transport, **options)

    return _open
