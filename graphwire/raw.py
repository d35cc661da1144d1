"""Reader/writer for the tagged wire values exchanged with the transport.

A raw value is a plain dict carrying its kind under ``"t"`` and the payload in
kind specific fields, e.g. ``{"t": "Int", "v": 7}`` or
``{"t": "Point2D", "srid": 7203, "x": 1.0, "y": 2.0}``. Writers always build a
fresh tree; nothing the caller passes in is stored by reference.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import EncodingError

RawValue = Dict[str, Any]


class Tag:
    """Discriminants of raw values."""
    NULL = "Null"
    BOOL = "Bool"
    INT = "Int"
    FLOAT = "Float"
    STRING = "String"
    LIST = "List"
    MAP = "Map"
    NODE = "Node"
    RELATIONSHIP = "Relationship"
    UNBOUND_RELATIONSHIP = "UnboundRelationship"
    PATH = "Path"
    DATE = "Date"
    LOCAL_TIME = "LocalTime"
    LOCAL_DATE_TIME = "LocalDateTime"
    DATE_TIME = "DateTime"
    DURATION = "Duration"
    POINT_2D = "Point2D"
    POINT_3D = "Point3D"
    UNKNOWN = "Unknown"


def decode_tag(raw: Any) -> str:
    """Return the discriminant of ``raw``, or ``Tag.UNKNOWN`` when it has none."""
    if not isinstance(raw, Mapping):
        return Tag.UNKNOWN
    tag = raw.get("t")
    if not isinstance(tag, str):
        return Tag.UNKNOWN
    return tag


def _expect(raw: Any, tag: str) -> Mapping[str, Any]:
    actual = decode_tag(raw)
    if actual != tag:
        raise EncodingError(f"expected raw {tag} value, got {actual}")
    return raw


# ============================================================================
# Writers
# ============================================================================


def make_null() -> RawValue:
    return {"t": Tag.NULL}


def make_bool(value: bool) -> RawValue:
    return {"t": Tag.BOOL, "v": bool(value)}


def make_int(value: int) -> RawValue:
    return {"t": Tag.INT, "v": int(value)}


def make_float(value: float) -> RawValue:
    return {"t": Tag.FLOAT, "v": float(value)}


def make_string(value: str) -> RawValue:
    return {"t": Tag.STRING, "v": str(value)}


def make_list(items: Sequence[RawValue]) -> RawValue:
    return {"t": Tag.LIST, "v": list(items)}


def make_map(entries: Mapping[str, RawValue]) -> RawValue:
    return {"t": Tag.MAP, "v": dict(entries)}


def make_node(node_id: int, labels: Sequence[str], properties: RawValue) -> RawValue:
    return {"t": Tag.NODE, "id": int(node_id), "labels": list(labels), "properties": properties}


def make_relationship(
    rel_id: int, start_id: int, end_id: int, rel_type: str, properties: RawValue
) -> RawValue:
    return {
        "t": Tag.RELATIONSHIP,
        "id": int(rel_id),
        "start_id": int(start_id),
        "end_id": int(end_id),
        "type": rel_type,
        "properties": properties,
    }


def make_unbound_relationship(rel_id: int, rel_type: str, properties: RawValue) -> RawValue:
    return {"t": Tag.UNBOUND_RELATIONSHIP, "id": int(rel_id), "type": rel_type, "properties": properties}


def make_path(
    nodes: Sequence[RawValue],
    relationships: Sequence[RawValue],
    sequence: Sequence[int],
) -> RawValue:
    return {
        "t": Tag.PATH,
        "nodes": list(nodes),
        "relationships": list(relationships),
        "sequence": [int(idx) for idx in sequence],
    }


def make_date(days: int) -> RawValue:
    return {"t": Tag.DATE, "days": int(days)}


def make_local_time(nanoseconds: int) -> RawValue:
    return {"t": Tag.LOCAL_TIME, "nanoseconds": int(nanoseconds)}


def make_local_date_time(seconds: int, nanoseconds: int) -> RawValue:
    return {"t": Tag.LOCAL_DATE_TIME, "seconds": int(seconds), "nanoseconds": int(nanoseconds)}


def make_date_time(
    seconds: int,
    nanoseconds: int,
    *,
    tz_offset_seconds: Optional[int] = None,
    tz_id: Optional[str] = None,
) -> RawValue:
    if (tz_offset_seconds is None) == (tz_id is None):
        raise EncodingError("date time requires exactly one of tz_offset_seconds or tz_id")
    raw: RawValue = {"t": Tag.DATE_TIME, "seconds": int(seconds), "nanoseconds": int(nanoseconds)}
    if tz_id is not None:
        raw["tz_id"] = tz_id
    else:
        raw["tz_offset_seconds"] = int(tz_offset_seconds)
    return raw


def make_duration(days: int, seconds: int, nanoseconds: int) -> RawValue:
    return {"t": Tag.DURATION, "days": int(days), "seconds": int(seconds), "nanoseconds": int(nanoseconds)}


def make_point_2d(srid: int, x: float, y: float) -> RawValue:
    return {"t": Tag.POINT_2D, "srid": int(srid), "x": float(x), "y": float(y)}


def make_point_3d(srid: int, x: float, y: float, z: float) -> RawValue:
    return {"t": Tag.POINT_3D, "srid": int(srid), "x": float(x), "y": float(y), "z": float(z)}


# ============================================================================
# Readers
# ============================================================================


def read_bool(raw: RawValue) -> bool:
    return bool(_expect(raw, Tag.BOOL)["v"])


def read_int(raw: RawValue) -> int:
    return int(_expect(raw, Tag.INT)["v"])


def read_float(raw: RawValue) -> float:
    return float(_expect(raw, Tag.FLOAT)["v"])


def read_string(raw: RawValue) -> str:
    value = _expect(raw, Tag.STRING)["v"]
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return str(value)


def read_list(raw: RawValue) -> List[RawValue]:
    return list(_expect(raw, Tag.LIST).get("v") or [])


def read_map(raw: RawValue) -> List[Tuple[str, RawValue]]:
    entries = _expect(raw, Tag.MAP).get("v") or {}
    return list(entries.items())


def read_node(raw: RawValue) -> Tuple[int, List[str], RawValue]:
    node = _expect(raw, Tag.NODE)
    return int(node["id"]), [str(label) for label in node.get("labels") or []], node.get("properties") or make_map({})


def read_relationship(raw: RawValue) -> Tuple[int, int, int, str, RawValue]:
    rel = _expect(raw, Tag.RELATIONSHIP)
    return (
        int(rel["id"]),
        int(rel["start_id"]),
        int(rel["end_id"]),
        str(rel["type"]),
        rel.get("properties") or make_map({}),
    )


def read_unbound_relationship(raw: RawValue) -> Tuple[int, str, RawValue]:
    rel = _expect(raw, Tag.UNBOUND_RELATIONSHIP)
    return int(rel["id"]), str(rel["type"]), rel.get("properties") or make_map({})


def read_path(raw: RawValue) -> Tuple[List[RawValue], List[RawValue]]:
    path = _expect(raw, Tag.PATH)
    return list(path.get("nodes") or []), list(path.get("relationships") or [])


def read_date(raw: RawValue) -> int:
    return int(_expect(raw, Tag.DATE)["days"])


def read_local_time(raw: RawValue) -> int:
    return int(_expect(raw, Tag.LOCAL_TIME)["nanoseconds"])


def read_local_date_time(raw: RawValue) -> Tuple[int, int]:
    value = _expect(raw, Tag.LOCAL_DATE_TIME)
    return int(value["seconds"]), int(value["nanoseconds"])


def read_date_time(raw: RawValue) -> Tuple[int, int, Optional[int], Optional[str]]:
    value = _expect(raw, Tag.DATE_TIME)
    tz_id = value.get("tz_id")
    offset = value.get("tz_offset_seconds")
    return (
        int(value["seconds"]),
        int(value["nanoseconds"]),
        int(offset) if offset is not None else None,
        str(tz_id) if tz_id is not None else None,
    )


def read_duration(raw: RawValue) -> Tuple[int, int, int]:
    value = _expect(raw, Tag.DURATION)
    return int(value.get("days", 0)), int(value.get("seconds", 0)), int(value.get("nanoseconds", 0))


def read_point_2d(raw: RawValue) -> Tuple[int, float, float]:
    value = _expect(raw, Tag.POINT_2D)
    return int(value["srid"]), float(value["x"]), float(value["y"])


def read_point_3d(raw: RawValue) -> Tuple[int, float, float, float]:
    value = _expect(raw, Tag.POINT_3D)
    return int(value["srid"]), float(value["x"]), float(value["y"]), float(value["z"])
