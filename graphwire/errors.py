"""Error types raised by the graphwire session engine."""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple, Type, Union

# Transport diagnostic prefix: [CODE_NAME] message
_ERROR_CODE_REGEX = re.compile(r'^\[([A-Z_]+)\]\s*')


class ErrorCode:
    """Error codes carried by every graphwire exception."""
    UNKNOWN = "UNKNOWN"
    INVALID_CONFIG = "INVALID_CONFIG"
    CONNECTION = "CONNECTION"
    PROTOCOL = "PROTOCOL"
    STATE = "STATE"
    ENCODING = "ENCODING"
    UNSUPPORTED_VALUE = "UNSUPPORTED_VALUE"
    PROGRAMMING = "PROGRAMMING"


class GraphWireError(Exception):
    """Base exception class for all graphwire errors."""

    def __init__(self, message: str, code: str = ErrorCode.UNKNOWN):
        super().__init__(message)
        self.code = code


class InvalidConfigError(GraphWireError):
    """Error raised when connection parameters are inconsistent.

    Detected before any I/O takes place.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.INVALID_CONFIG)


class ConnectionError(GraphWireError):
    """Error raised when the transport cannot open a session."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONNECTION)


class ProtocolError(GraphWireError):
    """Error raised when run/pull/fetch report a failure status.

    The session that raised it is left in the ``Bad`` state and must be
    discarded.
    """

    def __init__(self, message: str, server_code: Optional[str] = None):
        super().__init__(message, ErrorCode.PROTOCOL)
        self.server_code = server_code


class StateError(GraphWireError):
    """Error raised when an operation is invoked from an illegal state.

    The session is left untouched and stays usable.
    """

    def __init__(self, message: str, operation: Optional[str] = None, state: Optional[str] = None):
        super().__init__(message, ErrorCode.STATE)
        self.operation = operation
        self.state = state


class AlreadyExecutingError(StateError):
    """A query has been submitted and its results have not been pulled yet."""


class AlreadyFetchingError(StateError):
    """Rows of the current query are being fetched."""


class NotExecutingError(StateError):
    """Fetch was called without a query in flight."""


class NotInTransactionError(StateError):
    """Rollback was called without an open transaction."""


class ConnectionClosedError(StateError):
    """The connection was closed."""


class ConnectionBadError(StateError):
    """The connection hit an unrecoverable protocol error."""


class CursorClosedError(StateError):
    """The cursor was closed."""


class EncodingError(GraphWireError):
    """Error raised when a value cannot be represented on the other side."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.ENCODING)


class UnsupportedValueError(GraphWireError):
    """Error raised by strict decoding when a value kind is not recognized."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.UNSUPPORTED_VALUE)


class ProgrammingError(GraphWireError):
    """Error raised on a violated precondition that indicates a caller bug."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.PROGRAMMING)


# Map of error code strings to their corresponding exception classes
_ERROR_CLASS_MAP: Dict[str, Type[GraphWireError]] = {
    ErrorCode.INVALID_CONFIG: InvalidConfigError,
    ErrorCode.CONNECTION: ConnectionError,
    ErrorCode.PROTOCOL: ProtocolError,
    ErrorCode.ENCODING: EncodingError,
    ErrorCode.UNSUPPORTED_VALUE: UnsupportedValueError,
}


def split_error_code(message: str) -> Tuple[Optional[str], str]:
    """Split an optional "[CODE_NAME] " prefix off a transport diagnostic."""
    match = _ERROR_CODE_REGEX.match(message)
    if match is None:
        return None, message
    return match.group(1), message[match.end():]


def wrap_transport_error(
    err: Union[BaseException, str],
    default: Type[GraphWireError] = ProtocolError,
) -> GraphWireError:
    """Parse a transport diagnostic and return a typed exception.

    Diagnostics may carry a "[CODE_NAME] actual message" prefix. Known codes
    select the matching exception class; anything else becomes ``default``.

    Args:
        err: The exception raised by the transport, or its diagnostic text
        default: Class used when the diagnostic carries no known code

    Returns:
        A typed GraphWireError subclass instance
    """
    if isinstance(err, GraphWireError):
        return err
    code, clean_message = split_error_code(str(err))

    if code is not None:
        error_class = _ERROR_CLASS_MAP.get(code)
        if error_class is not None:
            return error_class(clean_message)
        if default is ProtocolError:
            return ProtocolError(clean_message, server_code=code)
        return default(clean_message)

    return default(clean_message)


__all__ = [
    "ErrorCode",
    "GraphWireError",
    "InvalidConfigError",
    "ConnectionError",
    "ProtocolError",
    "StateError",
    "AlreadyExecutingError",
    "AlreadyFetchingError",
    "NotExecutingError",
    "NotInTransactionError",
    "ConnectionClosedError",
    "ConnectionBadError",
    "CursorClosedError",
    "EncodingError",
    "UnsupportedValueError",
    "ProgrammingError",
    "split_error_code",
    "wrap_transport_error",
]
