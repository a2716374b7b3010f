from __future__ import annotations

"""
GML point-feature writer.

Layout (one featureMember per sample):
    <tnt:FeatureCollection>
      <gml:boundedBy srsName="EPSG:4326"><gml:coordinates>lonmin,latmin lonmax,latmax</gml:coordinates></gml:boundedBy>
      <gml:featureMember>
        <tnt:{task}_point>
          <tnt:{header channel}>value</...>      (all but the position triple)
          <tnt:{data channel}>value</...>
          <tnt:_POINT_><gml:Point srsName="EPSG:4326"><gml:coordinates>lon,lat,h</...></...></...>
        </tnt:{task}_point>
      </gml:featureMember>
      ...
"""

from pathlib import Path
from typing import Tuple
import xml.etree.ElementTree as ET

import numpy as np

from common.logging_setup import get_logger
from common.types import ChannelSet
from export.naming import sanitize_xml_name


log = get_logger("export.gml")

GML_NS = "http://www.opengis.net/gml"
TNT_NS = "http://www.microimages.com/TNT"
SRS = "EPSG:4326"

ET.register_namespace("gml", GML_NS)
ET.register_namespace("tnt", TNT_NS)

_POSITION = ("PositionNorth", "PositionEast", "PositionUp")


def _gml(tag: str) -> str:
    return f"{{{GML_NS}}}{tag}"


def _tnt(tag: str) -> str:
    return f"{{{TNT_NS}}}{tag}"


def _num(v) -> str:
    return repr(float(v))


def position_columns(header: ChannelSet, cartesian: bool = False) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    (lon, lat, height) in degrees/degrees/meters, or (east, north, up) meters
    in Cartesian mode. A missing PositionUp gives zero height.
    """
    north = header.get("PositionNorth")
    east = header.get("PositionEast")
    if north is None or east is None:
        raise ValueError("GML output needs PositionNorth and PositionEast channels")
    up = header.get("PositionUp")
    scale = 1e-3 if cartesian else 1e-7
    x = east.as_array().astype(float) * scale
    y = north.as_array().astype(float) * scale
    z = up.as_array().astype(float) * 1e-3 if up is not None else np.zeros(len(y))
    return x, y, z


def write_gml(
    path: str | Path,
    header: ChannelSet,
    data: ChannelSet,
    feature_name: str,
    *,
    cartesian: bool = False,
) -> int:
    """Write one point feature per sample. Returns the number of features."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    x, y, z = position_columns(header, cartesian)
    n = len(x)
    if len(data) and data.row_count != n:
        log.warning("Header and data row counts differ", extra={"extra": {"header": n, "data": data.row_count}})
        n = min(n, data.row_count)

    srs = {} if cartesian else {"srsName": SRS}
    root = ET.Element(_tnt("FeatureCollection"))
    if n:
        bounded = ET.SubElement(root, _gml("boundedBy"), srs)
        ET.SubElement(bounded, _gml("coordinates")).text = (
            f"{_num(x[:n].min())},{_num(y[:n].min())} {_num(x[:n].max())},{_num(y[:n].max())}"
        )

    point_tag = _tnt(sanitize_xml_name(f"{feature_name}_point"))
    extra_header = [(ch, _tnt(sanitize_xml_name(ch.name))) for ch in header if ch.name not in _POSITION]
    data_cols = [(ch, _tnt(sanitize_xml_name(ch.name))) for ch in data]

    for i in range(n):
        member = ET.SubElement(root, _gml("featureMember"))
        feature = ET.SubElement(member, point_tag)
        for ch, tag in extra_header + data_cols:
            ET.SubElement(feature, tag).text = ch.value_string(i)
        point = ET.SubElement(ET.SubElement(feature, _tnt("_POINT_")), _gml("Point"), srs)
        ET.SubElement(point, _gml("coordinates")).text = f"{_num(x[i])},{_num(y[i])},{_num(z[i])}"

    ET.ElementTree(root).write(p, encoding="utf-8", xml_declaration=True)
    log.info("GML written", extra={"extra": {"path": str(p), "features": n}})
    return n
