"""
Unit tests for CSV / GML writers and output naming
"""

import csv
import os
import sys
import xml.etree.ElementTree as ET

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.types import Channel, ChannelSet, DynamicRef, ScalarKind
from export.csv_writer import write_csv
from export.gml import GML_NS, TNT_NS, position_columns, write_gml
from export.naming import output_basename, output_filename, sanitize_filename, sanitize_xml_name
from taskdata.loader import Task


def _header():
    return ChannelSet([
        Channel("PositionNorth", ScalarKind.INT32, [520000000, 520000100]),
        Channel("PositionEast", ScalarKind.INT32, [130000000, 130000000]),
        Channel("PositionUp", ScalarKind.INT32, [50_000, 51_000]),
        Channel("TimeStartTOFD", ScalarKind.STRING, ["01:02:03.004", "01:02:04.004"]),
        Channel("TimeStartDATE", ScalarKind.STRING, ["2020-05-17", "2020-05-17"]),
    ])


def _data():
    return ChannelSet([Channel("Sprayer (1)_Rate&Flow", ScalarKind.INT32, [5, 7], DynamicRef("DET-4", 0x74))])


class TestNaming:
    """File and element names"""

    def test_sanitize_xml_name(self):
        assert sanitize_xml_name("Sprayer (1)_Rate&Flow") == "Sprayer__1__Rate_Flow"
        assert sanitize_xml_name("a+b c") == "a_b_c"
        assert sanitize_xml_name("1st boom") == "X1st_boom"
        assert sanitize_xml_name("") == "X"

    def test_sanitize_filename(self):
        assert sanitize_filename('a/b:c*d?"e"<f>|g.') == "abcdefg"

    def test_output_filename(self):
        task = Task(id="TSK1", name="Spraying", farm="Demo Farm", field="North Field")
        name = output_filename(task, _header(), "TLG00001", "gml", "Sprayer_Boom")
        assert name == "Demo Farm_North Field_Spraying_Sprayer_Boom_2020-05-17_01.02.03.004_TLG00001.GML"

    def test_basename_without_times(self):
        task = Task(id="TSK1", name="Spraying", farm="F", field="P")
        assert output_basename(task, ChannelSet()) == "F_P_Spraying"


class TestCsv:
    """Semicolon separated output"""

    def test_rows_and_names(self, tmp_path):
        path = tmp_path / "out" / "t.CSV"
        assert write_csv(path, _header(), _data()) == 2
        with open(path, newline="") as f:
            rows = list(csv.reader(f, delimiter=";"))
        assert rows[0] == [
            "PositionNorth", "PositionEast", "PositionUp", "TimeStartTOFD", "TimeStartDATE", "Sprayer__1__Rate_Flow",
        ]
        assert rows[1] == ["520000000", "130000000", "50000", "01:02:03.004", "2020-05-17", "5"]
        assert len(rows) == 3

    def test_shorter_data_limits_rows(self, tmp_path):
        data = ChannelSet([Channel("x", ScalarKind.INT32, [1])])
        assert write_csv(tmp_path / "t.CSV", _header(), data) == 1


class TestGml:
    """GML point features"""

    def test_position_columns(self):
        lon, lat, h = position_columns(_header())
        assert lon[0] == pytest.approx(13.0)
        assert lat[1] == pytest.approx(52.00001)
        assert h[1] == pytest.approx(51.0)

    def test_position_columns_need_north_and_east(self):
        with pytest.raises(ValueError):
            position_columns(ChannelSet([Channel("PositionNorth", ScalarKind.INT32, [1])]))

    def test_features(self, tmp_path):
        path = tmp_path / "t.GML"
        assert write_gml(path, _header(), _data(), "Spraying") == 2
        root = ET.parse(path).getroot()
        assert root.tag == f"{{{TNT_NS}}}FeatureCollection"
        bbox = root.find(f"{{{GML_NS}}}boundedBy")
        assert bbox.get("srsName") == "EPSG:4326"
        members = root.findall(f"{{{GML_NS}}}featureMember")
        assert len(members) == 2
        feature = members[0].find(f"{{{TNT_NS}}}Spraying_point")
        assert feature.find(f"{{{TNT_NS}}}TimeStartTOFD").text == "01:02:03.004"
        assert feature.find(f"{{{TNT_NS}}}Sprayer__1__Rate_Flow").text == "5"
        assert feature.find(f"{{{TNT_NS}}}PositionNorth") is None
        coords = feature.find(f"{{{TNT_NS}}}_POINT_/{{{GML_NS}}}Point/{{{GML_NS}}}coordinates").text
        lon, lat, h = (float(v) for v in coords.split(","))
        assert (lon, lat, h) == pytest.approx((13.0, 52.0, 50.0))

    def test_cartesian_has_no_srs(self, tmp_path):
        path = tmp_path / "t.GML"
        write_gml(path, _header(), ChannelSet(), "Spraying", cartesian=True)
        root = ET.parse(path).getroot()
        assert root.find(f"{{{GML_NS}}}boundedBy").get("srsName") is None
        point = root.find(f".//{{{GML_NS}}}Point")
        assert point.get("srsName") is None
        x, y, z = (float(v) for v in point.find(f"{{{GML_NS}}}coordinates").text.split(","))
        assert x == pytest.approx(130000.0)
