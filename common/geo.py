from __future__ import annotations

from typing import Tuple, Union
import numpy as np


Scalar = Union[float, np.ndarray]

# --- WGS84 constants ---
_WGS84_A = 6378137.0              # semi-major axis (m)
_WGS84_B = 6356752.314245         # semi-minor axis (m)
_WGS84_F = (_WGS84_A - _WGS84_B) / _WGS84_A   # flattening
_WGS84_E2 = _WGS84_F * (2.0 - _WGS84_F)       # first eccentricity squared
_WGS84_EP2 = _WGS84_E2 / (1.0 - _WGS84_E2)    # second eccentricity squared


# -------------------------
# Geodetic <-> ECEF
# -------------------------
def geodetic_to_ecef(lat: Scalar, lon: Scalar, h: Scalar) -> Tuple[Scalar, Scalar, Scalar]:
    """WGS84 geodetic (deg, deg, m) to ECEF (x,y,z) meters. Works elementwise on arrays."""
    phi = np.radians(lat)
    lam = np.radians(lon)
    sinp = np.sin(phi)
    cosp = np.cos(phi)
    N = _WGS84_A / np.sqrt(1.0 - _WGS84_E2 * sinp * sinp)
    x = (N + h) * cosp * np.cos(lam)
    y = (N + h) * cosp * np.sin(lam)
    z = (N * (1.0 - _WGS84_E2) + h) * sinp
    return x, y, z


def ecef_to_geodetic(x: Scalar, y: Scalar, z: Scalar) -> Tuple[Scalar, Scalar, Scalar]:
    """
    ECEF (x,y,z) to WGS84 geodetic (lat, lon, h). Bowring's method, single step.
    Sub-millimeter for points near the surface, which is all we need here.
    """
    p = np.hypot(x, y)
    th = np.arctan2(_WGS84_A * z, _WGS84_B * p)
    sth, cth = np.sin(th), np.cos(th)
    lat = np.arctan2(z + _WGS84_EP2 * _WGS84_B * sth ** 3, p - _WGS84_E2 * _WGS84_A * cth ** 3)
    lon = np.arctan2(y, x)
    sinp = np.sin(lat)
    N = _WGS84_A / np.sqrt(1.0 - _WGS84_E2 * sinp * sinp)
    h = p / np.cos(lat) - N
    return np.degrees(lat), np.degrees(lon), h


# -------------------------
# ECEF <-> local ENU
# -------------------------
def enu_rotation(lat0: float, lon0: float) -> np.ndarray:
    """
    Rotation matrix R_e2enu that maps ECEF vectors into local ENU at (lat0, lon0).
    """
    lat = np.radians(lat0)
    lon = np.radians(lon0)
    sL, cL = np.sin(lat), np.cos(lat)
    sO, cO = np.sin(lon), np.cos(lon)
    return np.array(
        [
            [-sO, cO, 0.0],
            [-sL * cO, -sL * sO, cL],
            [cL * cO, cL * sO, sL],
        ],
        dtype=float,
    )


def ecef_to_enu(
    x: Scalar, y: Scalar, z: Scalar,
    lat0: float, lon0: float, h0: float,
) -> Tuple[Scalar, Scalar, Scalar]:
    """ECEF point(s) to East-North-Up meters in the tangent plane at (lat0, lon0, h0)."""
    x0, y0, z0 = geodetic_to_ecef(lat0, lon0, h0)
    R = enu_rotation(lat0, lon0)
    d = np.stack([np.asarray(x, dtype=float) - x0,
                  np.asarray(y, dtype=float) - y0,
                  np.asarray(z, dtype=float) - z0])
    e, n, u = np.tensordot(R, d, axes=1)
    return _unwrap(e), _unwrap(n), _unwrap(u)


def enu_to_ecef(
    east: Scalar, north: Scalar, up: Scalar,
    lat0: float, lon0: float, h0: float,
) -> Tuple[Scalar, Scalar, Scalar]:
    """Inverse of ecef_to_enu()."""
    x0, y0, z0 = geodetic_to_ecef(lat0, lon0, h0)
    R = enu_rotation(lat0, lon0)
    enu = np.stack([np.asarray(east, dtype=float),
                    np.asarray(north, dtype=float),
                    np.asarray(up, dtype=float)])
    dx, dy, dz = np.tensordot(R.T, enu, axes=1)  # R is orthonormal
    return _unwrap(dx + x0), _unwrap(dy + y0), _unwrap(dz + z0)


# -------------------------
# Compositions
# -------------------------
def geodetic_to_enu(
    lat: Scalar, lon: Scalar, h: Scalar,
    lat0: float, lon0: float, h0: float,
) -> Tuple[Scalar, Scalar, Scalar]:
    """
    Geodetic WGS84 to local ENU (meters) around the origin (lat0, lon0, h0).

    Goes through ECEF, so it stays exact for field-sized areas and beyond.
    """
    x, y, z = geodetic_to_ecef(lat, lon, h)
    return ecef_to_enu(x, y, z, lat0, lon0, h0)


def enu_to_geodetic(
    east: Scalar, north: Scalar, up: Scalar,
    lat0: float, lon0: float, h0: float,
) -> Tuple[Scalar, Scalar, Scalar]:
    """Local ENU (meters) back to geodetic WGS84 (deg, deg, m)."""
    x, y, z = enu_to_ecef(east, north, up, lat0, lon0, h0)
    return ecef_to_geodetic(x, y, z)


def _unwrap(v: np.ndarray) -> Scalar:
    # 0-d results go back to plain floats so scalar callers get scalars
    return float(v) if np.ndim(v) == 0 else v
