"""Conversion between raw wire values and host values."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from . import raw as _raw
from .errors import EncodingError, UnsupportedValueError
from .raw import RawValue, Tag
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
    check_i64,
    check_u32,
    date_to_days,
    days_to_date,
    resolve_zone,
)

_logger = logging.getLogger(__name__)

_UTC_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ============================================================================
# Decoding
# ============================================================================


def _decode_properties(raw_map: RawValue, strict: bool) -> Dict[str, Value]:
    return {key: decode(item, strict=strict) for key, item in _raw.read_map(raw_map)}


def _decode_node(raw_node: RawValue, strict: bool) -> Node:
    node_id, labels, properties = _raw.read_node(raw_node)
    return Node(node_id, labels, _decode_properties(properties, strict))


def _decode_unbound(raw_rel: RawValue, strict: bool) -> UnboundRelationship:
    rel_id, rel_type, properties = _raw.read_unbound_relationship(raw_rel)
    return UnboundRelationship(rel_id, rel_type, _decode_properties(properties, strict))


def _decode_relationship(raw_rel: RawValue, strict: bool) -> Relationship:
    rel_id, start_id, end_id, rel_type, properties = _raw.read_relationship(raw_rel)
    return Relationship(rel_id, start_id, end_id, rel_type, _decode_properties(properties, strict))


def _decode_path(raw_path: RawValue, strict: bool) -> Path:
    raw_nodes, raw_rels = _raw.read_path(raw_path)
    if len(raw_nodes) != len(raw_rels) + 1:
        raise EncodingError(
            f"malformed path: {len(raw_nodes)} nodes for {len(raw_rels)} relationships"
        )
    # the traversal sequence is ignored; encounter order is kept as delivered
    return Path(
        [_decode_node(node, strict) for node in raw_nodes],
        [_decode_unbound(rel, strict) for rel in raw_rels],
    )


def _decode_date_time(raw_value: RawValue) -> DateTime:
    seconds, nanoseconds, offset, tz_id = _raw.read_date_time(raw_value)
    check_i64(seconds, "date time seconds")
    if tz_id is not None:
        zone = resolve_zone(tz_id)
        try:
            instant = _UTC_EPOCH + timedelta(seconds=seconds)
        except OverflowError as err:
            raise EncodingError(f"date time of {seconds}s is out of range") from err
        delta = instant.astimezone(zone).utcoffset()
        offset = int(delta.total_seconds()) if delta is not None else 0
    elif offset is None:
        offset = 0
    local = LocalDateTime.from_epoch(seconds + offset, nanoseconds)
    return DateTime(local, offset, tz_id)


_DECODERS: Dict[str, Callable[[RawValue, bool], Value]] = {
    Tag.NULL: lambda value, strict: None,
    Tag.BOOL: lambda value, strict: _raw.read_bool(value),
    Tag.INT: lambda value, strict: _raw.read_int(value),
    Tag.FLOAT: lambda value, strict: _raw.read_float(value),
    Tag.STRING: lambda value, strict: _raw.read_string(value),
    Tag.LIST: lambda value, strict: [decode(item, strict=strict) for item in _raw.read_list(value)],
    Tag.MAP: _decode_properties,
    Tag.NODE: _decode_node,
    Tag.RELATIONSHIP: _decode_relationship,
    Tag.UNBOUND_RELATIONSHIP: _decode_unbound,
    Tag.PATH: _decode_path,
    Tag.DATE: lambda value, strict: days_to_date(_raw.read_date(value)),
    Tag.LOCAL_TIME: lambda value, strict: LocalTime.from_nanoseconds(_raw.read_local_time(value)),
    Tag.LOCAL_DATE_TIME: lambda value, strict: LocalDateTime.from_epoch(*_raw.read_local_date_time(value)),
    Tag.DATE_TIME: lambda value, strict: _decode_date_time(value),
    Tag.DURATION: lambda value, strict: Duration.from_components(*_raw.read_duration(value)),
    Tag.POINT_2D: lambda value, strict: Point2D(*_raw.read_point_2d(value)),
    Tag.POINT_3D: lambda value, strict: Point3D(*_raw.read_point_3d(value)),
}


def decode(raw_value: RawValue, *, strict: bool = False) -> Value:
    """Convert a raw wire value into its host representation.

    Unknown or unrecognized tags decode to ``None`` so that a newer server
    does not break an older client. Pass ``strict=True`` to raise
    ``UnsupportedValueError`` instead.
    """
    tag = _raw.decode_tag(raw_value)
    decoder = _DECODERS.get(tag)
    if decoder is None:
        if strict:
            raise UnsupportedValueError(f"cannot decode value of kind '{tag}'")
        _logger.warning("decoding value of unsupported kind %r as null", tag)
        return None
    return decoder(raw_value, strict)


def decode_columns(raw_columns: RawValue) -> List[str]:
    return [_raw.read_string(column) for column in _raw.read_list(raw_columns)]


def decode_record(raw_row: RawValue) -> Record:
    if _raw.decode_tag(raw_row) == Tag.LIST:
        items = _raw.read_list(raw_row)
    else:
        items = list(raw_row)
    return Record(tuple(decode(item) for item in items))


def decode_summary(raw_summary: Optional[RawValue]) -> Dict[str, Value]:
    if raw_summary is None:
        return {}
    summary = decode(raw_summary)
    if not isinstance(summary, dict):
        raise EncodingError("result summary must be a map")
    return summary


# ============================================================================
# Primitive encoders
# ============================================================================


def encode_int(value: int) -> RawValue:
    return _raw.make_int(check_i64(value, "integer"))


def encode_float(value: float) -> RawValue:
    return _raw.make_float(value)


def encode_string(value: str, what: str = "string") -> RawValue:
    if "\x00" in value:
        raise EncodingError(f"{what} contains an embedded NUL character")
    return _raw.make_string(value)


def encode_date(value: date) -> RawValue:
    return _raw.make_date(date_to_days(value))


def encode_local_time(value: LocalTime) -> RawValue:
    return _raw.make_local_time(value.to_nanoseconds())


def encode_local_date_time(value: LocalDateTime) -> RawValue:
    return _raw.make_local_date_time(*value.to_epoch())


def encode_date_time(value: DateTime) -> RawValue:
    seconds, nanoseconds = value.to_utc_epoch()
    if value.tz_id is not None:
        return _raw.make_date_time(seconds, nanoseconds, tz_id=value.tz_id)
    return _raw.make_date_time(seconds, nanoseconds, tz_offset_seconds=value.tz_offset_seconds)


def encode_duration(value: Duration) -> RawValue:
    return _raw.make_duration(*value.components())


def encode_point(value: Any) -> RawValue:
    srid = check_u32(value.srid, "point srid")
    if isinstance(value, Point3D):
        return _raw.make_point_3d(srid, value.x, value.y, value.z)
    return _raw.make_point_2d(srid, value.x, value.y)


def aware_datetime_to_value(value: datetime) -> DateTime:
    delta = value.utcoffset()
    offset = int(delta.total_seconds()) if delta is not None else 0
    tz_id = getattr(value.tzinfo, "key", None)
    return DateTime(LocalDateTime.from_datetime(value.replace(tzinfo=None)), offset, tz_id)


# ============================================================================
# Full value encoding
# ============================================================================


def _encode_properties(properties: Mapping[str, Any]) -> RawValue:
    entries: Dict[str, RawValue] = {}
    for key, item in properties.items():
        if not isinstance(key, str):
            raise EncodingError(f"map keys must be strings, got {type(key).__name__}")
        encode_string(key, f"map key {key!r}")
        entries[key] = encode(item)
    return _raw.make_map(entries)


def _encode_node(node: Node) -> RawValue:
    return _raw.make_node(
        check_i64(node.id, "node id"),
        [encode_string(label, "node label")["v"] for label in node.labels],
        _encode_properties(node.properties),
    )


def _encode_unbound(rel: UnboundRelationship) -> RawValue:
    return _raw.make_unbound_relationship(
        check_i64(rel.id, "relationship id"), rel.type, _encode_properties(rel.properties)
    )


def _path_sequence(path: Path) -> List[int]:
    sequence: List[int] = []
    for idx in range(path.relationship_count):
        sequence.extend((idx + 1, idx + 1))
    return sequence


def encode(value: Any) -> RawValue:
    """Convert any host value into a freshly built raw value.

    Graph values and zoned date times are only ever sent back for round trip
    testing; query parameters go through :func:`graphwire.params.encode_param`.
    """
    if value is None:
        return _raw.make_null()
    if isinstance(value, bool):
        return _raw.make_bool(value)
    if isinstance(value, int):
        return encode_int(value)
    if isinstance(value, float):
        return encode_float(value)
    if isinstance(value, str):
        return encode_string(value)
    if isinstance(value, (list, tuple)):
        return _raw.make_list([encode(item) for item in value])
    if isinstance(value, Mapping):
        return _encode_properties(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return encode_local_date_time(LocalDateTime.from_datetime(value))
        return encode_date_time(aware_datetime_to_value(value))
    if isinstance(value, date):
        return encode_date(value)
    if isinstance(value, time):
        return encode_local_time(LocalTime.from_time(value))
    if isinstance(value, timedelta):
        return encode_duration(Duration.from_timedelta(value))
    if isinstance(value, LocalTime):
        return encode_local_time(value)
    if isinstance(value, LocalDateTime):
        return encode_local_date_time(value)
    if isinstance(value, DateTime):
        return encode_date_time(value)
    if isinstance(value, Duration):
        return encode_duration(value)
    if isinstance(value, (Point2D, Point3D)):
        return encode_point(value)
    if isinstance(value, Node):
        return _encode_node(value)
    if isinstance(value, Relationship):
        return _raw.make_relationship(
            check_i64(value.id, "relationship id"),
            check_i64(value.start_id, "relationship start id"),
            check_i64(value.end_id, "relationship end id"),
            value.type,
            _encode_properties(value.properties),
        )
    if isinstance(value, UnboundRelationship):
        return _encode_unbound(value)
    if isinstance(value, Path):
        return _raw.make_path(
            [_encode_node(node) for node in value.nodes],
            [_encode_unbound(rel) for rel in value.relationships],
            _path_sequence(value),
        )
    raise EncodingError(f"unsupported value type: {type(value)!r}")


__all__ = [
    "decode",
    "decode_columns",
    "decode_record",
    "decode_summary",
    "encode",
    "encode_int",
    "encode_float",
    "encode_string",
    "encode_date",
    "encode_local_time",
    "encode_local_date_time",
    "encode_date_time",
    "encode_duration",
    "encode_point",
]
