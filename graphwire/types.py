"""Host-side value classes for the property graph value model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .errors import EncodingError

_I64_MIN = -(1 << 63)
_I64_MAX = (1 << 63) - 1
_U32_MAX = (1 << 32) - 1
_NANOS_PER_MICRO = 1_000
_NANOS_PER_SECOND = 1_000_000_000
_SECONDS_PER_DAY = 86_400
_NANOS_PER_DAY = _SECONDS_PER_DAY * _NANOS_PER_SECOND
EPOCH_DATE = date(1970, 1, 1)


def check_i64(value: int, what: str) -> int:
    if value < _I64_MIN or value > _I64_MAX:
        raise EncodingError(f"{what} must fit within signed 64-bit range")
    return value


def check_u32(value: int, what: str) -> int:
    if value < 0 or value > _U32_MAX:
        raise EncodingError(f"{what} must fit within unsigned 32-bit range")
    return value


def days_to_date(days: int) -> date:
    try:
        return EPOCH_DATE + timedelta(days=days)
    except OverflowError as err:
        raise EncodingError(f"date offset of {days} days is out of range") from err


def date_to_days(value: date) -> int:
    return (value - EPOCH_DATE).days


# ============================================================================
# Temporal values
# ============================================================================


@dataclass(frozen=True)
class LocalTime:
    """Wall clock time of day with nanosecond precision."""

    hour: int = 0
    minute: int = 0
    second: int = 0
    nanosecond: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour < 24:
            raise ValueError("hour must be in 0..23")
        if not 0 <= self.minute < 60:
            raise ValueError("minute must be in 0..59")
        if not 0 <= self.second < 60:
            raise ValueError("second must be in 0..59")
        if not 0 <= self.nanosecond < _NANOS_PER_SECOND:
            raise ValueError("nanosecond must be in 0..999999999")

    @classmethod
    def from_nanoseconds(cls, nanoseconds: int) -> "LocalTime":
        if not 0 <= nanoseconds < _NANOS_PER_DAY:
            raise EncodingError(f"local time of {nanoseconds}ns is outside a single day")
        seconds, nanos = divmod(nanoseconds, _NANOS_PER_SECOND)
        minutes, second = divmod(seconds, 60)
        hour, minute = divmod(minutes, 60)
        return cls(hour, minute, second, nanos)

    def to_nanoseconds(self) -> int:
        seconds = (self.hour * 60 + self.minute) * 60 + self.second
        return seconds * _NANOS_PER_SECOND + self.nanosecond

    @classmethod
    def from_time(cls, value: time) -> "LocalTime":
        if value.tzinfo is not None:
            raise EncodingError("local time cannot carry timezone info")
        return cls(value.hour, value.minute, value.second, value.microsecond * _NANOS_PER_MICRO)

    def to_time(self) -> time:
        micros, rest = divmod(self.nanosecond, _NANOS_PER_MICRO)
        if rest:
            raise EncodingError("local time has sub-microsecond precision that datetime.time cannot hold")
        return time(self.hour, self.minute, self.second, micros)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}.{self.nanosecond:09d}"


@dataclass(frozen=True)
class LocalDateTime:
    """Calendar date plus wall clock time, without a timezone."""

    date: date
    time: LocalTime = field(default_factory=LocalTime)

    @classmethod
    def from_epoch(cls, seconds: int, nanoseconds: int) -> "LocalDateTime":
        check_i64(seconds, "local date time seconds")
        check_i64(nanoseconds, "local date time nanoseconds")
        days, rest = divmod(seconds * _NANOS_PER_SECOND + nanoseconds, _NANOS_PER_DAY)
        return cls(days_to_date(days), LocalTime.from_nanoseconds(rest))

    def to_epoch(self) -> Tuple[int, int]:
        total = date_to_days(self.date) * _NANOS_PER_DAY + self.time.to_nanoseconds()
        seconds, nanoseconds = divmod(total, _NANOS_PER_SECOND)
        return check_i64(seconds, "local date time seconds"), nanoseconds

    @classmethod
    def from_datetime(cls, value: datetime) -> "LocalDateTime":
        if value.tzinfo is not None:
            raise EncodingError("local date time cannot carry timezone info")
        return cls(value.date(), LocalTime.from_time(value.time()))

    def to_datetime(self) -> datetime:
        return datetime.combine(self.date, self.time.to_time())

    def __str__(self) -> str:
        return f"{self.date.isoformat()}T{self.time}"


@dataclass(frozen=True)
class DateTime:
    """Wall clock date time pinned to a fixed offset or a named zone.

    ``tz_offset_seconds`` always holds the UTC offset in effect at that
    instant; ``tz_id`` is set only when the zone was given by name.
    """

    local: LocalDateTime
    tz_offset_seconds: int = 0
    tz_id: Optional[str] = None

    def zone(self) -> tzinfo:
        if self.tz_id is not None:
            return resolve_zone(self.tz_id)
        return timezone(timedelta(seconds=self.tz_offset_seconds))

    def to_datetime(self) -> datetime:
        return self.local.to_datetime().replace(tzinfo=self.zone())

    def to_utc_epoch(self) -> Tuple[int, int]:
        seconds, nanoseconds = self.local.to_epoch()
        return check_i64(seconds - self.tz_offset_seconds, "date time seconds"), nanoseconds

    def __str__(self) -> str:
        if self.tz_id is not None:
            return f"{self.local}[{self.tz_id}]"
        sign = "-" if self.tz_offset_seconds < 0 else "+"
        minutes = abs(self.tz_offset_seconds) // 60
        return f"{self.local}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def resolve_zone(tz_id: str) -> tzinfo:
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    try:
        return ZoneInfo(tz_id)
    except (ZoneInfoNotFoundError, ValueError) as err:
        raise EncodingError(f"unknown timezone '{tz_id}'") from err


@dataclass(frozen=True)
class Duration:
    """Signed span of time with nanosecond precision."""

    nanoseconds: int = 0

    def __post_init__(self) -> None:
        check_i64(self.nanoseconds, "duration")

    @classmethod
    def from_components(cls, days: int = 0, seconds: int = 0, nanoseconds: int = 0) -> "Duration":
        total = (days * _SECONDS_PER_DAY + seconds) * _NANOS_PER_SECOND + nanoseconds
        return cls(check_i64(total, "duration"))

    def components(self) -> Tuple[int, int, int]:
        """Split into (days, seconds, nanoseconds) with non-negative remainders."""
        days, rest = divmod(self.nanoseconds, _NANOS_PER_DAY)
        seconds, nanoseconds = divmod(rest, _NANOS_PER_SECOND)
        return days, seconds, nanoseconds

    @classmethod
    def from_timedelta(cls, value: timedelta) -> "Duration":
        return cls.from_components(value.days, value.seconds, value.microseconds * _NANOS_PER_MICRO)

    def to_timedelta(self) -> timedelta:
        micros, rest = divmod(self.nanoseconds, _NANOS_PER_MICRO)
        if rest:
            raise EncodingError("duration has sub-microsecond precision that timedelta cannot hold")
        return timedelta(microseconds=micros)

    def __str__(self) -> str:
        days, seconds, nanoseconds = self.components()
        return f"P{days}DT{seconds}.{nanoseconds:09d}S"


# ============================================================================
# Spatial values
# ============================================================================


@dataclass(frozen=True)
class Point2D:
    srid: int
    x: float
    y: float

    def __str__(self) -> str:
        return f"point({{srid: {self.srid}, x: {self.x!r}, y: {self.y!r}}})"


@dataclass(frozen=True)
class Point3D:
    srid: int
    x: float
    y: float
    z: float

    def __str__(self) -> str:
        return f"point({{srid: {self.srid}, x: {self.x!r}, y: {self.y!r}, z: {self.z!r}}})"


# ============================================================================
# Graph values
# ============================================================================


@dataclass(frozen=True)
class Node:
    """Graph node. ``id`` is only meaningful within the originating graph."""

    id: int
    labels: List[str] = field(default_factory=list)
    properties: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        labels = "".join(f":{label}" for label in self.labels)
        if not labels:
            return f"({_format_map(self.properties)})"
        return f"({labels} {_format_map(self.properties)})"


@dataclass(frozen=True)
class Relationship:
    id: int
    start_id: int
    end_id: int
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[:{self.type} {_format_map(self.properties)}]"


@dataclass(frozen=True)
class UnboundRelationship:
    """Relationship without endpoints, as carried inside a path."""

    id: int
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[:{self.type} {_format_map(self.properties)}]"


@dataclass(frozen=True)
class Path:
    """Alternating node/relationship walk, nodes and relationships in encounter order."""

    nodes: List[Node] = field(default_factory=list)
    relationships: List[UnboundRelationship] = field(default_factory=list)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def relationship_count(self) -> int:
        return len(self.relationships)

    def __str__(self) -> str:
        parts: List[str] = []
        for idx, node in enumerate(self.nodes):
            if idx:
                parts.append(f"-{self.relationships[idx - 1]}->")
            parts.append(str(node))
        return "".join(parts)


Value = Union[
    None,
    bool,
    int,
    float,
    str,
    List[Any],
    Dict[str, Any],
    date,
    LocalTime,
    LocalDateTime,
    DateTime,
    Duration,
    Point2D,
    Point3D,
    Node,
    Relationship,
    UnboundRelationship,
    Path,
]


@dataclass(frozen=True)
class Record:
    """One result row; positions follow the column list returned by execute."""

    values: Tuple[Value, ...] = ()

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, idx: int) -> Value:
        return self.values[idx]

    def __iter__(self) -> Iterator[Value]:
        return iter(self.values)

    def __str__(self) -> str:
        return ", ".join(format_value(value) for value in self.values)


# ============================================================================
# Display
# ============================================================================


def _format_map(mapping: Dict[str, Any]) -> str:
    entries = [f"'{key}': {format_value(mapping[key])}" for key in sorted(mapping)]
    return "{" + ", ".join(entries) + "}"


def format_value(value: Value) -> str:
    """Render a decoded value for display; map keys come out sorted."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return f"'{value}'"
    if isinstance(value, list):
        return "[" + ", ".join(format_value(item) for item in value) + "]"
    if isinstance(value, dict):
        return _format_map(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    return str(value)


__all__ = [
    "Value",
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
    "Record",
    "format_value",
]
