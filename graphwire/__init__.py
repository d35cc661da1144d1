"""Client-side session engine and value model for property graph databases."""

__version__ = "0.1.0"

from .config import ConnectParams, SSLMode
from .connection import Connection, ConnectionStatus, connect
from .cursor import Cursor, CursorStatus
from .errors import (
    ErrorCode,
    GraphWireError,
    InvalidConfigError,
    ConnectionError,
    ProtocolError,
    StateError,
    AlreadyExecutingError,
    AlreadyFetchingError,
    NotExecutingError,
    NotInTransactionError,
    ConnectionClosedError,
    ConnectionBadError,
    CursorClosedError,
    EncodingError,
    UnsupportedValueError,
    ProgrammingError,
    wrap_transport_error,
)
from .params import QueryParam, encode_params
from .transport import Transport
from .types import (
    DateTime,
    Duration,
    LocalDateTime,
    LocalTime,
    Node,
    Path,
    Point2D,
    Point3D,
    Record,
    Relationship,
    UnboundRelationship,
    Value,
    format_value,
)
from .values import decode, encode

__all__ = [
    "__version__",
    "connect",
    "Connection",
    "ConnectionStatus",
    "ConnectParams",
    "SSLMode",
    "Cursor",
    "CursorStatus",
    "Transport",
    # Values
    "Value",
    "QueryParam",
    "Record",
    "LocalTime",
    "LocalDateTime",
    "DateTime",
    "Duration",
    "Point2D",
    "Point3D",
    "Node",
    "Relationship",
    "UnboundRelationship",
    "Path",
    "format_value",
    "decode",
    "encode",
    "encode_params",
    # Error types
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
    "wrap_transport_error",
]
