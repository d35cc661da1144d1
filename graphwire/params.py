"""Encoding of query parameters into the raw parameter map."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from . import raw as _raw
from .errors import EncodingError
from .raw import RawValue
from .types import (
    DateTime,
    Duration,
    LocalDateTime,
    LocalTime,
    Node,
    Path,
    Point2D,
    Point3D,
    Relationship,
    UnboundRelationship,
)
from .values import (
    encode_date,
    encode_duration,
    encode_float,
    encode_int,
    encode_local_date_time,
    encode_local_time,
    encode_point,
    encode_string,
)

QueryParam = Union[
    None,
    bool,
    int,
    float,
    str,
    date,
    datetime,
    time,
    timedelta,
    LocalTime,
    LocalDateTime,
    Duration,
    Point2D,
    Point3D,
    Sequence[Any],
    Mapping[str, Any],
]

_GRAPH_TYPES = (Node, Relationship, UnboundRelationship, Path)


def encode_param(value: QueryParam, name: str = "parameter") -> RawValue:
    """Convert one parameter value into a freshly built raw value.

    Graph values and zoned date times are not legal parameters; the parameter
    surface of the protocol is strictly scalar and composite.
    """
    if value is None:
        return _raw.make_null()
    if isinstance(value, bool):
        return _raw.make_bool(value)
    if isinstance(value, int):
        try:
            return encode_int(value)
        except EncodingError as err:
            raise EncodingError(f"{name}: {err}") from err
    if isinstance(value, float):
        return encode_float(value)
    if isinstance(value, str):
        return encode_string(value, name)
    if isinstance(value, (list, tuple)):
        items: List[RawValue] = [
            encode_param(item, f"{name}[{idx}]") for idx, item in enumerate(value)
        ]
        return _raw.make_list(items)
    if isinstance(value, Mapping):
        return _encode_param_map(value, name)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            raise EncodingError(f"{name}: timezone aware datetimes are not supported as parameters")
        return encode_local_date_time(LocalDateTime.from_datetime(value))
    if isinstance(value, date):
        return encode_date(value)
    if isinstance(value, time):
        if value.tzinfo is not None:
            raise EncodingError(f"{name}: timezone aware times are not supported as parameters")
        return encode_local_time(LocalTime.from_time(value))
    if isinstance(value, timedelta):
        return encode_duration(Duration.from_timedelta(value))
    if isinstance(value, LocalTime):
        return encode_local_time(value)
    if isinstance(value, LocalDateTime):
        return encode_local_date_time(value)
    if isinstance(value, Duration):
        return encode_duration(value)
    if isinstance(value, (Point2D, Point3D)):
        return encode_point(value)
    if isinstance(value, DateTime):
        raise EncodingError(f"{name}: zoned date times are not supported as parameters")
    if isinstance(value, _GRAPH_TYPES):
        raise EncodingError(f"{name}: {type(value).__name__} values cannot be sent as parameters")
    raise EncodingError(f"{name}: unsupported parameter type {type(value)!r}")


def _encode_param_map(mapping: Mapping[Any, Any], name: str) -> RawValue:
    entries: Dict[str, RawValue] = {}
    for key, item in mapping.items():
        if not isinstance(key, str):
            raise EncodingError(f"{name}: map keys must be strings, got {type(key).__name__}")
        encode_string(key, f"{name} key {key!r}")
        entries[key] = encode_param(item, f"{name}.{key}")
    return _raw.make_map(entries)


def encode_params(params: Optional[Mapping[str, QueryParam]]) -> Optional[RawValue]:
    """Build the single raw map sent alongside a query.

    Whether the query text actually references each name is left to the
    server.
    """
    if params is None:
        return None
    if not isinstance(params, Mapping):
        raise TypeError("query parameters must be a mapping of name -> value")
    entries: Dict[str, RawValue] = {}
    for key, value in params.items():
        if not isinstance(key, str):
            raise EncodingError(f"parameter names must be strings, got {type(key).__name__}")
        encode_string(key, f"parameter name {key!r}")
        entries[key] = encode_param(value, f"parameter '{key}'")
    return _raw.make_map(entries)


__all__ = ["QueryParam", "encode_param", "encode_params"]
