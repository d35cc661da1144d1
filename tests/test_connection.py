from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable

import pytest

from graphwire import Connection, ConnectionStatus, DateTime, LocalDateTime, Record
from graphwire.errors import (
    AlreadyExecutingError,
    AlreadyFetchingError,
    ConnectionBadError,
    ConnectionClosedError,
    ConnectionError,
    EncodingError,
    NotExecutingError,
    NotInTransactionError,
    ProgrammingError,
    ProtocolError,
    StateError,
)

OpenConnection = Callable[..., Connection]

ROWS_QUERY = "MATCH (n) RETURN n.k"


def _script_rows(transport: Any, count: int = 3) -> None:
    transport.script(ROWS_QUERY, ["n.k"], [[k] for k in range(1, count + 1)])


def _enter_state(conn: Connection, transport: Any, state: ConnectionStatus) -> None:
    """Drive a lazy, manual-commit connection into ``state``."""
    _script_rows(transport)
    if state is ConnectionStatus.READY:
        pass
    elif state is ConnectionStatus.IN_TRANSACTION:
        conn.execute(ROWS_QUERY)
        conn.fetchall()
    elif state is ConnectionStatus.EXECUTING:
        conn.execute(ROWS_QUERY)
    elif state is ConnectionStatus.FETCHING:
        conn.execute(ROWS_QUERY)
        conn.fetchone()
    elif state is ConnectionStatus.CLOSED:
        conn.close()
    elif state is ConnectionStatus.BAD:
        conn.execute(ROWS_QUERY)
        transport.fail_next("pull", "connection reset")
        with pytest.raises(ProtocolError):
            conn.fetchone()
    assert conn.status is state


# ============================================================================
# Connect Tests
# ============================================================================


def test_connect_initial_state(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection(lazy=False, autocommit=True)
    assert conn.status is ConnectionStatus.READY
    assert conn.lazy is False
    assert conn.autocommit is True
    assert conn.arraysize == 1
    assert conn.summary is None
    assert conn.columns is None
    assert transport.connect_options["host"] == "localhost"


def test_connect_failure_reports_diagnostic(open_connection: OpenConnection, transport: Any) -> None:
    transport.connect_status = -1
    transport.last_error = "authentication failure"
    with pytest.raises(ConnectionError, match="authentication failure"):
        open_connection()
    assert transport.closed == ["session-1"]


def test_connect_failure_without_handle(open_connection: OpenConnection, transport: Any) -> None:
    transport.connect_status = -1
    transport.connect_handle = None
    with pytest.raises(ConnectionError, match="failed to connect"):
        open_connection()
    assert transport.closed == []


def test_connect_transport_exception_is_wrapped(open_connection: OpenConnection, transport: Any, monkeypatch: Any) -> None:
    def boom(options: Any) -> Any:
        raise OSError("name resolution failed")

    monkeypatch.setattr(transport, "connect", boom)
    with pytest.raises(ConnectionError, match="name resolution failed"):
        open_connection()


# ============================================================================
# State Table Tests
# ============================================================================

_FETCH_OPS = ["fetchone", "fetchmany", "fetchall"]

_DISALLOWED = [
    (ConnectionStatus.READY, "fetchone", NotExecutingError),
    (ConnectionStatus.READY, "fetchmany", NotExecutingError),
    (ConnectionStatus.READY, "fetchall", NotExecutingError),
    (ConnectionStatus.READY, "rollback", NotInTransactionError),
    (ConnectionStatus.IN_TRANSACTION, "fetchone", NotExecutingError),
    (ConnectionStatus.IN_TRANSACTION, "fetchmany", NotExecutingError),
    (ConnectionStatus.IN_TRANSACTION, "fetchall", NotExecutingError),
    (ConnectionStatus.EXECUTING, "execute", AlreadyExecutingError),
    (ConnectionStatus.EXECUTING, "commit", AlreadyExecutingError),
    (ConnectionStatus.EXECUTING, "rollback", AlreadyExecutingError),
    (ConnectionStatus.FETCHING, "execute", AlreadyFetchingError),
    (ConnectionStatus.FETCHING, "commit", AlreadyFetchingError),
    (ConnectionStatus.FETCHING, "rollback", AlreadyFetchingError),
] + [
    (state, op, error)
    for state, error in (
        (ConnectionStatus.CLOSED, ConnectionClosedError),
        (ConnectionStatus.BAD, ConnectionBadError),
    )
    for op in ["execute", "commit", "rollback"] + _FETCH_OPS
]


def _invoke(conn: Connection, op: str) -> Any:
    if op == "execute":
        return conn.execute(ROWS_QUERY)
    return getattr(conn, op)()


@pytest.mark.parametrize("state, op, error", _DISALLOWED)
def test_disallowed_operation_leaves_state_unchanged(
    open_connection: OpenConnection, transport: Any, state: ConnectionStatus, op: str, error: type
) -> None:
    conn = open_connection()
    _enter_state(conn, transport, state)
    calls_before = list(transport.calls)

    with pytest.raises(error) as excinfo:
        _invoke(conn, op)

    assert isinstance(excinfo.value, StateError)
    assert excinfo.value.state == state.value
    assert conn.status is state
    assert transport.calls == calls_before


def test_not_executing_messages_differ(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    with pytest.raises(NotExecutingError) as ready_err:
        conn.fetchone()
    _enter_state(conn, transport, ConnectionStatus.IN_TRANSACTION)
    with pytest.raises(NotExecutingError) as tx_err:
        conn.fetchone()
    assert str(ready_err.value) != str(tx_err.value)


@pytest.mark.parametrize("state", [ConnectionStatus.EXECUTING, ConnectionStatus.FETCHING])
def test_close_while_executing_is_programming_error(
    open_connection: OpenConnection, transport: Any, state: ConnectionStatus
) -> None:
    conn = open_connection()
    _enter_state(conn, transport, state)
    with pytest.raises(ProgrammingError, match="while a query is executing"):
        conn.close()
    assert conn.status is state
    assert transport.closed == []


def test_close_from_bad_is_rejected(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    _enter_state(conn, transport, ConnectionStatus.BAD)
    with pytest.raises(ConnectionBadError):
        conn.close()
    assert conn.status is ConnectionStatus.BAD


@pytest.mark.parametrize("state", [ConnectionStatus.READY, ConnectionStatus.IN_TRANSACTION])
def test_close_releases_handle_once(open_connection: OpenConnection, transport: Any, state: ConnectionStatus) -> None:
    conn = open_connection()
    _enter_state(conn, transport, state)
    conn.close()
    conn.close()
    assert conn.status is ConnectionStatus.CLOSED
    assert transport.closed == ["session-1"]


# ============================================================================
# Mode Setter Tests
# ============================================================================


def test_setters_allowed_when_ready(open_connection: OpenConnection) -> None:
    conn = open_connection()
    conn.set_lazy(False)
    conn.set_autocommit(True)
    assert conn.lazy is False
    assert conn.autocommit is True


@pytest.mark.parametrize(
    "state",
    [
        ConnectionStatus.IN_TRANSACTION,
        ConnectionStatus.EXECUTING,
        ConnectionStatus.FETCHING,
        ConnectionStatus.CLOSED,
    ],
)
def test_setters_rejected_outside_ready(open_connection: OpenConnection, transport: Any, state: ConnectionStatus) -> None:
    conn = open_connection()
    _enter_state(conn, transport, state)
    with pytest.raises(ProgrammingError, match="set_lazy"):
        conn.set_lazy(False)
    with pytest.raises(ProgrammingError, match="set_autocommit"):
        conn.set_autocommit(True)
    assert conn.lazy is True
    assert conn.autocommit is False


def test_arraysize(open_connection: OpenConnection) -> None:
    conn = open_connection()
    conn.set_arraysize(5)
    assert conn.arraysize == 5
    with pytest.raises(ValueError):
        conn.set_arraysize(0)


# ============================================================================
# Execution Tests
# ============================================================================


def test_implicit_begin_and_commit(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    _script_rows(transport, 1)
    assert conn.execute(ROWS_QUERY) == ["n.k"]
    assert transport.queries == ["BEGIN", ROWS_QUERY]
    assert conn.fetchall() == [Record((1,))]
    assert conn.status is ConnectionStatus.IN_TRANSACTION

    conn.execute(ROWS_QUERY)
    conn.fetchall()
    assert transport.queries == ["BEGIN", ROWS_QUERY, ROWS_QUERY]

    conn.commit()
    assert transport.queries[-1] == "COMMIT"
    assert conn.status is ConnectionStatus.READY


def test_rollback_returns_to_ready(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    _enter_state(conn, transport, ConnectionStatus.IN_TRANSACTION)
    conn.rollback()
    assert transport.queries[-1] == "ROLLBACK"
    assert conn.status is ConnectionStatus.READY


def test_commit_from_ready_is_noop(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    conn.commit()
    assert transport.queries == []
    assert conn.status is ConnectionStatus.READY


def test_autocommit_skips_transaction_statements(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection(autocommit=True)
    _script_rows(transport, 2)
    conn.execute(ROWS_QUERY)
    assert conn.fetchall() == [Record((1,)), Record((2,))]
    assert conn.status is ConnectionStatus.READY
    conn.commit()
    conn.rollback()
    assert transport.queries == [ROWS_QUERY]


def test_execute_returns_columns_and_clears_summary(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection(autocommit=True)
    transport.script(ROWS_QUERY, ["n.k", "m"], [[1, "a"]], summary={"type": "r"})
    conn.execute(ROWS_QUERY)
    conn.fetchall()
    assert conn.summary == {"type": "r", "has_more": False}

    assert conn.execute(ROWS_QUERY) == ["n.k", "m"]
    assert conn.columns == ["n.k", "m"]
    assert conn.summary is None


def test_execute_without_results_keeps_state(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    _script_rows(transport, 2)
    conn.execute_without_results(ROWS_QUERY)
    assert conn.status is ConnectionStatus.READY
    assert transport.queries == [ROWS_QUERY]


def test_lazy_fetch_pulls_one_row_at_a_time(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection(autocommit=True)
    _script_rows(transport, 2)
    conn.execute(ROWS_QUERY)
    assert conn.status is ConnectionStatus.EXECUTING
    assert transport.pulls() == []

    assert conn.fetchone() == Record((1,))
    assert conn.status is ConnectionStatus.FETCHING
    assert conn.fetchone() == Record((2,))
    assert conn.fetchone() is None
    assert conn.status is ConnectionStatus.READY
    # the end of the stream arrives with the second window
    assert transport.pulls() == [{"n": 1}, {"n": 1}]


def test_eager_execute_buffers_all_rows(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection(lazy=False)
    _script_rows(transport, 3)
    conn.execute(ROWS_QUERY)
    # BEGIN and the query itself are each pulled in full
    assert transport.pulls() == [None, None]
    assert conn.status is ConnectionStatus.EXECUTING

    assert conn.fetchone() == Record((1,))
    assert conn.fetchmany(2) == [Record((2,)), Record((3,))]
    assert conn.status is ConnectionStatus.EXECUTING
    assert conn.fetchone() is None
    assert conn.status is ConnectionStatus.IN_TRANSACTION
    assert transport.pulls() == [None, None]


@pytest.mark.parametrize("count", [0, 1, 4])
def test_lazy_and_eager_yield_same_records(open_connection: OpenConnection, transport: Any, count: int) -> None:
    _script_rows(transport, count)
    lazy = open_connection(lazy=True)
    lazy.execute(ROWS_QUERY)
    lazy_rows = lazy.fetchall()
    eager = open_connection(lazy=False)
    eager.execute(ROWS_QUERY)
    eager_rows = eager.fetchall()
    assert lazy_rows == eager_rows
    assert len(lazy_rows) == count


def test_fetchall_twice_is_state_error(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    _script_rows(transport, 2)
    conn.execute(ROWS_QUERY)
    assert len(conn.fetchall()) == 2
    with pytest.raises(NotExecutingError):
        conn.fetchall()


def test_fetchmany_default_size_and_validation(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    _script_rows(transport, 3)
    conn.set_arraysize(2)
    conn.execute(ROWS_QUERY)
    assert conn.fetchmany() == [Record((1,)), Record((2,))]
    with pytest.raises(ValueError):
        conn.fetchmany(0)
    assert conn.fetchmany() == [Record((3,))]
    assert conn.status is ConnectionStatus.IN_TRANSACTION
    with pytest.raises(NotExecutingError):
        conn.fetchmany()


def test_params_are_sent_as_single_map(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection(autocommit=True)
    transport.script("RETURN $value", ["value"], lambda params: [[params["value"]]])
    conn.execute("RETURN $value", {"value": [1, "two", {"three": 3.0}]})
    assert conn.fetchone() == Record(([1, "two", {"three": 3.0}],))
    run_call = [call for call in transport.calls if call[0] == "run"][-1]
    assert run_call[2]["t"] == "Map"


def test_encoding_error_is_local_and_recoverable(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    with pytest.raises(EncodingError):
        conn.execute("RETURN $s", {"s": "nul\x00"})
    assert conn.status is ConnectionStatus.READY
    assert transport.queries == []


# ============================================================================
# Protocol Failure Tests
# ============================================================================


def test_missing_parameter_is_protocol_error(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    with pytest.raises(ProtocolError, match=r"Parameter \$name not provided"):
        conn.execute("MATCH (n {name: $name}) RETURN n", {"other": 1})
    assert conn.status is ConnectionStatus.BAD


@pytest.mark.parametrize("operation", ["run", "pull", "fetch"])
def test_failure_status_drives_bad(open_connection: OpenConnection, transport: Any, operation: str, caplog: Any) -> None:
    conn = open_connection(autocommit=True)
    _script_rows(transport, 2)
    transport.fail_next(operation, "[SERVICE_UNAVAILABLE] leader switched")
    with caplog.at_level(logging.ERROR, logger="graphwire.connection"):
        with pytest.raises(ProtocolError) as excinfo:
            conn.execute(ROWS_QUERY)
            conn.fetchone()
    assert str(excinfo.value) == "leader switched"
    assert excinfo.value.server_code == "SERVICE_UNAVAILABLE"
    assert conn.status is ConnectionStatus.BAD
    assert "leader switched" in caplog.text


def test_failed_implicit_begin_drives_bad(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    transport.fail_next("run", "cannot start transaction")
    with pytest.raises(ProtocolError, match="cannot start transaction"):
        conn.execute(ROWS_QUERY)
    assert conn.status is ConnectionStatus.BAD
    assert transport.queries == []


def test_transport_exception_drives_bad(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection(autocommit=True)
    transport.raise_next("run", RuntimeError("socket closed"))
    with pytest.raises(ProtocolError, match="socket closed") as excinfo:
        conn.execute(ROWS_QUERY)
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert conn.status is ConnectionStatus.BAD


@pytest.mark.parametrize("code", ["ENCODING", "CONNECTION", "INVALID_CONFIG"])
def test_transport_exception_is_always_protocol_error(
    open_connection: OpenConnection, transport: Any, code: str
) -> None:
    conn = open_connection(autocommit=True)
    transport.raise_next("run", RuntimeError(f"[{code}] bad bytes on the wire"))
    with pytest.raises(ProtocolError) as excinfo:
        conn.execute(ROWS_QUERY)
    assert type(excinfo.value) is ProtocolError
    assert excinfo.value.server_code == code
    assert str(excinfo.value) == "bad bytes on the wire"
    assert conn.status is ConnectionStatus.BAD


# ============================================================================
# Undecodable Row Tests
# ============================================================================


@pytest.mark.parametrize("lazy", [True, False], ids=["lazy", "eager"])
def test_undecodable_row_is_recoverable(open_connection: OpenConnection, transport: Any, lazy: bool) -> None:
    unknown_zone = DateTime(LocalDateTime(date(2024, 1, 1)), 0, "Nowhere/Zone")
    transport.script(ROWS_QUERY, ["v"], [[1], [unknown_zone], [3]])
    conn = open_connection(lazy=lazy, autocommit=True)

    conn.execute(ROWS_QUERY)
    assert conn.fetchone() == Record((1,))
    with pytest.raises(EncodingError, match="Nowhere/Zone"):
        conn.fetchone()
    assert conn.status in (ConnectionStatus.EXECUTING, ConnectionStatus.FETCHING)
    assert conn.fetchall() == [Record((3,))]
    assert conn.status is ConnectionStatus.READY
    assert conn.summary == {"has_more": False}

    # the transport has no result left over for the next query
    transport.script("RETURN 1", ["x"], [[1]])
    conn.execute("RETURN 1")
    assert conn.fetchall() == [Record((1,))]


# ============================================================================
# Scenario Tests
# ============================================================================


def test_manual_commit_scenario(open_connection: OpenConnection, transport: Any) -> None:
    transport.script("MATCH (n:T) RETURN n.k", ["n.k"], [[1]])
    conn = open_connection(lazy=True, autocommit=False)

    conn.execute("CREATE (n:T {k:1})")
    assert conn.status is ConnectionStatus.EXECUTING
    assert conn.fetchone() is None
    assert conn.status is ConnectionStatus.IN_TRANSACTION

    conn.execute("MATCH (n:T) RETURN n.k")
    record = conn.fetchone()
    assert record == Record((1,))
    assert isinstance(record[0], int)
    assert conn.fetchone() is None
    assert conn.status is ConnectionStatus.IN_TRANSACTION

    conn.commit()
    assert conn.status is ConnectionStatus.READY
    assert transport.queries == ["BEGIN", "CREATE (n:T {k:1})", "MATCH (n:T) RETURN n.k", "COMMIT"]


# ============================================================================
# Teardown Tests
# ============================================================================


def test_context_manager_closes(open_connection: OpenConnection, transport: Any) -> None:
    with open_connection() as conn:
        assert conn.status is ConnectionStatus.READY
    assert conn.status is ConnectionStatus.CLOSED
    assert transport.closed == ["session-1"]


def test_context_manager_releases_mid_query(open_connection: OpenConnection, transport: Any) -> None:
    _script_rows(transport)
    with pytest.raises(RuntimeError, match="user code failed"):
        with open_connection() as conn:
            conn.execute(ROWS_QUERY)
            raise RuntimeError("user code failed")
    assert conn.status is ConnectionStatus.CLOSED
    assert transport.closed == ["session-1"]


def test_context_manager_releases_bad_connection(open_connection: OpenConnection, transport: Any) -> None:
    with open_connection() as conn:
        _enter_state(conn, transport, ConnectionStatus.BAD)
    assert conn.status is ConnectionStatus.BAD
    assert transport.closed == ["session-1"]


def test_finalizer_releases_handle(open_connection: OpenConnection, transport: Any) -> None:
    conn = open_connection()
    conn.__del__()
    conn.__del__()
    assert transport.closed == ["session-1"]
