from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np


ORIGINAL_ELEMENT = "original"

# ISO 11783 frames are x forward, y right, z down; ENU work wants y left, z up.
_AXIS_SIGN = (1.0, -1.0, -1.0)


def iso_mm_to_m(axis: int, millimeters: float) -> float:
    """Convert an ISO 11783 offset (mm, x fwd / y right / z down) to meters in our frame."""
    return _AXIS_SIGN[axis] * float(millimeters) * 0.001


@dataclass(frozen=True, slots=True)
class DynamicRef:
    """
    Identity of a logged process-data channel: (device element id, DDI).

    When attached to a Point3 axis it means the axis value is read per sample
    from that channel instead of being a constant.
    """
    element_id: str
    code: int

    def __str__(self) -> str:
        return f"{self.element_id}/{self.code:04X}"


@dataclass(frozen=True, slots=True)
class Point3:
    """
    Offset in a vehicle-local frame (meters, x forward, y left, z up).

    Arithmetic only looks at the constant fields; resolve dynamic axes for a
    given sample with resolved() first.
    """
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    x_ref: Optional[DynamicRef] = None
    y_ref: Optional[DynamicRef] = None
    z_ref: Optional[DynamicRef] = None

    def __add__(self, other: "Point3") -> "Point3":
        return Point3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Point3") -> "Point3":
        return Point3(self.x - other.x, self.y - other.y, self.z - other.z)

    def dot(self, other: "Point3") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def rotated(self, angle: float) -> "Point3":
        """Rotate about the vertical axis by `angle` radians (counter-clockwise)."""
        c, s = math.cos(angle), math.sin(angle)
        return Point3(self.x * c - self.y * s, self.x * s + self.y * c, self.z)

    @property
    def refs(self) -> Tuple[Optional[DynamicRef], Optional[DynamicRef], Optional[DynamicRef]]:
        return (self.x_ref, self.y_ref, self.z_ref)

    @property
    def is_dynamic(self) -> bool:
        return any(r is not None for r in self.refs)

    def is_default(self) -> bool:
        return not self.is_dynamic and self.x == 0.0 and self.y == 0.0 and self.z == 0.0

    def resolved(self, lookup: Callable[[DynamicRef], Optional[float]]) -> "Point3":
        """
        Replace every dynamic axis by lookup(ref), a raw ISO value in millimeters.
        A lookup returning None leaves that axis at 0.
        """
        if not self.is_dynamic:
            return self
        vals = [self.x, self.y, self.z]
        for axis, ref in enumerate(self.refs):
            if ref is None:
                continue
            raw = lookup(ref)
            vals[axis] = 0.0 if raw is None else iso_mm_to_m(axis, raw)
        return Point3(vals[0], vals[1], vals[2])


class ConnectionType(Enum):
    MOUNTED = "mounted"
    TOWED = "towed"


class ScalarKind(Enum):
    """
    The closed set of column types a time-log can carry.
    Value: (struct format, byte width, numpy dtype).
    """
    STRING = ("", 0, object)
    BYTE = ("<B", 1, np.uint8)
    INT16 = ("<h", 2, np.int16)
    INT32 = ("<i", 4, np.int32)
    UINT16 = ("<H", 2, np.uint16)
    UINT32 = ("<I", 4, np.uint32)
    UINT64 = ("<Q", 8, np.uint64)

    def __init__(self, fmt: str, size: int, dtype: Any) -> None:
        self.fmt = fmt
        self.size = size
        self.dtype = dtype


@dataclass(slots=True)
class Channel:
    """
    One named column of decoded values.

    Process-data columns carry a DynamicRef identity and are always INT32;
    build them with Channel.process_data().
    """
    name: str
    kind: ScalarKind
    values: List[Any] = field(default_factory=list)
    ref: Optional[DynamicRef] = None

    def __post_init__(self) -> None:
        if self.ref is not None and self.kind is not ScalarKind.INT32:
            raise TypeError(f"process-data channel {self.name!r} must be INT32, got {self.kind.name}")

    @classmethod
    def process_data(cls, name: str, ref: DynamicRef, seed: int = 0) -> "Channel":
        return cls(name=name, kind=ScalarKind.INT32, values=[int(seed)], ref=ref)

    def __len__(self) -> int:
        return len(self.values)

    def append(self, value: Any) -> None:
        self.values.append(value)

    @property
    def last(self) -> Any:
        return self.values[-1]

    def value_string(self, index: int) -> str:
        return str(self.values[index])

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=self.kind.dtype)

    def copy(self) -> "Channel":
        return Channel(name=self.name, kind=self.kind, values=list(self.values), ref=self.ref)


@dataclass
class ChannelSet:
    """Ordered collection of columns; one row per decoded record."""
    channels: List[Channel] = field(default_factory=list)

    def __iter__(self) -> Iterator[Channel]:
        return iter(self.channels)

    def __len__(self) -> int:
        return len(self.channels)

    def add(self, channel: Channel) -> Channel:
        self.channels.append(channel)
        return channel

    def get(self, name: str) -> Optional[Channel]:
        for ch in self.channels:
            if ch.name == name:
                return ch
        return None

    def matching(self, ref: DynamicRef) -> List[Channel]:
        return [ch for ch in self.channels if ch.ref == ref]

    @property
    def names(self) -> List[str]:
        return [ch.name for ch in self.channels]

    @property
    def row_count(self) -> int:
        return len(self.channels[0]) if self.channels else 0

    def is_rectangular(self) -> bool:
        return len({len(ch) for ch in self.channels}) <= 1

    def copy(self) -> "ChannelSet":
        return ChannelSet([ch.copy() for ch in self.channels])

    def clear(self) -> None:
        self.channels.clear()


@dataclass
class GeometryRecord:
    """
    Kinematic description of one instrumented point relative to the GNSS antenna.

    Attributes:
        element: device element id (DET/@A) or ORIGINAL_ELEMENT.
        description: human-readable label used in output file names.
        connection: MOUNTED follows tractor heading, TOWED follows the hitch.
        tractor_navigation_point: antenna position in the tractor frame.
        tractor_connector_point: hitch position in the tractor frame.
        implement_connector_point: hitch position in the implement frame.
        implement_element_point: instrumented point in the implement frame.
        yaw_reference: measured heading channel, if the tractor logs one.
        header_channels / data_channels: filled per time-log.
    """
    element: str
    description: str = ""
    connection: ConnectionType = ConnectionType.MOUNTED
    tractor_navigation_point: Point3 = field(default_factory=Point3)
    tractor_connector_point: Point3 = field(default_factory=Point3)
    implement_connector_point: Point3 = field(default_factory=Point3)
    implement_element_point: Point3 = field(default_factory=Point3)
    yaw_reference: Optional[DynamicRef] = None
    header_channels: ChannelSet = field(default_factory=ChannelSet)
    data_channels: ChannelSet = field(default_factory=ChannelSet)

    @classmethod
    def original(cls) -> "GeometryRecord":
        return cls(element=ORIGINAL_ELEMENT, description="", connection=ConnectionType.MOUNTED)

    @property
    def is_original(self) -> bool:
        return self.element == ORIGINAL_ELEMENT

    @property
    def points(self) -> Tuple[Point3, Point3, Point3, Point3]:
        return (
            self.tractor_navigation_point,
            self.tractor_connector_point,
            self.implement_connector_point,
            self.implement_element_point,
        )

    def dynamic_refs(self) -> List[DynamicRef]:
        out: List[DynamicRef] = []
        for p in self.points:
            for r in p.refs:
                if r is not None and r not in out:
                    out.append(r)
        return out

    def is_identity(self) -> bool:
        """True when every point is a zero constant, i.e. the output equals the antenna trace."""
        return all(p.is_default() for p in self.points)

    def for_timelog(self) -> "GeometryRecord":
        """Fresh copy with empty channel sets for one time-log's decode/simulate pass."""
        return replace(self, header_channels=ChannelSet(), data_channels=ChannelSet())

    def to_meta(self) -> Dict[str, Any]:
        """Summary without channel data (safe to log)."""
        return {
            "element": self.element,
            "description": self.description,
            "connection": self.connection.value,
            "dynamic_refs": [str(r) for r in self.dynamic_refs()],
        }
