from __future__ import annotations

"""
Trajectory simulation.

Turns the antenna trace of a time-log into the trace of every point described
by a GeometryRecord:

    antenna --(nav offset, tractor heading)--> tractor reference point
            --(connector offset, tractor heading)--> hitch
            --(implement heading)--> implement reference point --> element

Mounted implements take the tractor heading. Towed implements integrate the
hitch motion with the trailer constraint
    d(psi) = (v . u(psi + 90deg)) / L
where L is the hitch arm (implement connector x offset).
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from common.config import SimulationSettings
from common.geo import enu_to_geodetic, geodetic_to_enu
from common.logging_setup import get_logger
from common.types import (
    Channel,
    ChannelSet,
    ConnectionType,
    DynamicRef,
    GeometryRecord,
    Point3,
    ScalarKind,
)
from simulation.heading import estimate_headings, smooth_headings, wrap_angle


log = get_logger("simulation.trajectory")

POSITION_CHANNELS = ("PositionNorth", "PositionEast", "PositionUp")
LATLON_SCALE = 1e-7   # deg per unit
HEIGHT_SCALE = 1e-3   # m per unit


@dataclass
class Track:
    """Antenna fixes in local ENU meters around `origin` (lat, lon, h)."""
    east: np.ndarray
    north: np.ndarray
    up: np.ndarray
    origin: Tuple[float, float, float]

    def __len__(self) -> int:
        return len(self.east)

    def point(self, i: int) -> Point3:
        return Point3(float(self.east[i]), float(self.north[i]), float(self.up[i]))


def track_from_header(header: ChannelSet) -> Optional[Track]:
    north = header.get("PositionNorth")
    east = header.get("PositionEast")
    if north is None or east is None:
        return None
    if len(north) == 0:
        empty = np.zeros(0)
        return Track(empty, empty.copy(), empty.copy(), (0.0, 0.0, 0.0))
    lat = north.as_array().astype(float) * LATLON_SCALE
    lon = east.as_array().astype(float) * LATLON_SCALE
    up = header.get("PositionUp")
    h = up.as_array().astype(float) * HEIGHT_SCALE if up is not None else np.zeros(len(lat))
    origin = (float(lat[0]), float(lon[0]), float(h[0]))
    e, n, u = geodetic_to_enu(lat, lon, h, *origin)
    return Track(np.atleast_1d(e), np.atleast_1d(n), np.atleast_1d(u), origin)


def measured_heading(record: GeometryRecord, n: int) -> Optional[np.ndarray]:
    """
    Heading from the logged yaw channel of the towing vehicle, if any.

    Unverified: assumes 0.001 deg, clockwise from north. Recorded data does not
    line up with the GNSS track under this reading, which is why it is off by
    default (simulation.use_measured_yaw).
    """
    if record.yaw_reference is None:
        return None
    matches = record.data_channels.matching(record.yaw_reference)
    if len(matches) != 1 or len(matches[0]) < n:
        return None
    deg = matches[0].as_array()[:n].astype(float) * 1e-3
    return np.array([wrap_angle(math.pi / 2.0 - math.radians(d)) for d in deg])


def _ref_columns(record: GeometryRecord) -> Dict[DynamicRef, Optional[List[int]]]:
    cols: Dict[DynamicRef, Optional[List[int]]] = {}
    for ref in record.dynamic_refs():
        matches = record.data_channels.matching(ref)
        if len(matches) == 1:
            cols[ref] = matches[0].values
        else:
            log.warning(
                "Dynamic offset channel not resolvable, using 0",
                extra={"extra": {"element": record.element, "ref": str(ref), "matches": len(matches)}},
            )
            cols[ref] = None
    return cols


def _unit(angle: float) -> Point3:
    return Point3(math.cos(angle), math.sin(angle), 0.0)


def simulate_record(record: GeometryRecord, track: Track, tractor_heading: np.ndarray) -> List[Point3]:
    """Positions (ENU meters) of the record's point for every fix."""
    cols = _ref_columns(record)
    out: List[Point3] = []
    implement_heading = 0.0
    prev_hitch: Optional[Point3] = None

    for i in range(len(track)):
        def lookup(ref: DynamicRef) -> Optional[float]:
            col = cols.get(ref)
            return col[i] if col is not None and i < len(col) else None

        nav, tcp, icp, iep = (p.resolved(lookup) for p in record.points)
        th = float(tractor_heading[i])

        hitch = track.point(i) - nav.rotated(th) + tcp.rotated(th)

        if record.connection is ConnectionType.MOUNTED:
            implement_heading = th
        elif prev_hitch is not None and icp.x > 0.0:
            v = hitch - prev_hitch
            implement_heading = wrap_angle(
                implement_heading + v.dot(_unit(implement_heading + math.pi / 2.0)) / icp.x
            )
        else:
            implement_heading = th
        prev_hitch = hitch

        out.append(hitch - icp.rotated(implement_heading) + iep.rotated(implement_heading))
    return out


def _position_channels(points: List[Point3], track: Track, cartesian: bool) -> List[Channel]:
    e = np.array([p.x for p in points], dtype=float)
    n = np.array([p.y for p in points], dtype=float)
    u = np.array([p.z for p in points], dtype=float)
    if cartesian:
        north, east, up = n * 1e3, e * 1e3, u * 1e3
    else:
        lat, lon, h = enu_to_geodetic(e, n, u, *track.origin)
        north = np.atleast_1d(lat) / LATLON_SCALE
        east = np.atleast_1d(lon) / LATLON_SCALE
        up = np.atleast_1d(h) / HEIGHT_SCALE
    # int() truncates toward zero
    return [
        Channel(name, ScalarKind.INT32, [int(v) for v in vals])
        for name, vals in zip(POSITION_CHANNELS, (north, east, up))
    ]


def _raw_position_channels(header: ChannelSet, n: int) -> List[Channel]:
    out = []
    for name in POSITION_CHANNELS:
        ch = header.get(name)
        out.append(ch.copy() if ch is not None else Channel(name, ScalarKind.INT32, [0] * n))
    return out


def _other_header_channels(header: ChannelSet) -> List[Channel]:
    return [ch.copy() for ch in header if ch.name not in POSITION_CHANNELS]


def simulate(
    header: ChannelSet,
    records: List[GeometryRecord],
    settings: Optional[SimulationSettings] = None,
    *,
    cartesian: bool = False,
) -> bool:
    """
    Fill every record's header_channels with its simulated positions followed
    by the other raw header channels. Returns False (records get a copy of
    the raw header) when the time-log has no position channels. A time-log
    without records gives empty trajectories and still returns True.
    """
    settings = settings or SimulationSettings()
    track = track_from_header(header)
    if track is None:
        log.warning("No position channels in time-log, nothing to simulate")
        for rec in records:
            rec.header_channels = header.copy()
        return False

    if len(track) == 0:
        log.info("Time-log has no records, writing empty trajectories")
        for rec in records:
            rec.header_channels = ChannelSet(_raw_position_channels(header, 0) + _other_header_channels(header))
        return True

    estimated = smooth_headings(
        estimate_headings(track.east, track.north, min_move_m=settings.heading_min_move_m),
        settings.smoothing_window,
    )

    for rec in records:
        heading = estimated
        if settings.use_measured_yaw:
            measured = measured_heading(rec, len(track))
            if measured is not None:
                log.warning("Using measured yaw, unit/sign convention unverified",
                            extra={"extra": {"element": rec.element}})
                heading = measured

        if rec.is_identity() and not cartesian:
            positions = _raw_position_channels(header, len(track))
        else:
            positions = _position_channels(simulate_record(rec, track, heading), track, cartesian)

        rec.header_channels = ChannelSet(positions + _other_header_channels(header))

    log.info(
        "Trajectories simulated",
        extra={"extra": {"samples": len(track), "records": len(records), "cartesian": cartesian}},
    )
    return True
