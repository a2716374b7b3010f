"""
Unit tests for geometry resolution and channel partitioning
"""

import os
import sys
from dataclasses import replace

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.types import ORIGINAL_ELEMENT, Channel, ChannelSet, ConnectionType, DynamicRef, Point3, ScalarKind
from geometry.partition import partition_channels
from geometry.resolver import GeometryResolver
from taskdata.graph import DDI_OFFSET_X, DDI_OFFSET_Y, DDI_YAW
from taskdata.loader import load_task_document
from tests.fixtures.builders import (
    DDI_RATE,
    DDI_STATE,
    cnn,
    det,
    dpd,
    dpt,
    dvc,
    sprayer_dvc,
    standard_task_xml,
    task_xml,
    tractor_dvc,
    write_task_dir,
)


def _load(tmp_path, text):
    doc = load_task_document(write_task_dir(tmp_path, text))
    return doc, doc.tasks[0]


class TestExtractOffset:
    """Per-element offsets"""

    @pytest.fixture
    def resolver(self, tmp_path):
        doc, _ = _load(tmp_path, standard_task_xml())
        return GeometryResolver(doc.graph)

    def test_constant_offsets_in_meters(self, resolver):
        p = resolver.extract_offset("DET-2")
        assert (p.x, p.y, p.z) == pytest.approx((1.0, -0.5, -2.0))
        assert not p.is_dynamic

    def test_logged_offset_becomes_reference(self, resolver):
        p = resolver.extract_offset("DET-6")
        assert p.x == pytest.approx(-4.0)
        assert p.y_ref == DynamicRef("DET-6", DDI_OFFSET_Y)
        assert p.x_ref is None and p.z_ref is None

    def test_element_without_offsets(self, resolver):
        assert resolver.extract_offset("DET-4").is_default()
        assert not resolver.has_offset("DET-4")

    def test_deterministic(self, resolver):
        assert resolver.extract_offset("DET-6") == resolver.extract_offset("DET-6")

    def test_describe(self, resolver):
        assert resolver.describe("DET-5") == "Sprayer_Drawbar"
        assert resolver.describe(ORIGINAL_ELEMENT) == ""


class TestResolve:
    """Towed and mounted shapes"""

    def test_towed_connection(self, tmp_path):
        doc, task = _load(tmp_path, standard_task_xml())
        records, ok = GeometryResolver(doc.graph).resolve(task)
        assert ok
        assert [r.element for r in records] == ["DET-5", "DET-6", "DET-4", ORIGINAL_ELEMENT]
        for rec in records[:-1]:
            assert rec.connection is ConnectionType.TOWED
            assert rec.tractor_navigation_point.x == pytest.approx(1.0)
            assert rec.tractor_connector_point.x == pytest.approx(-2.0)
            assert rec.implement_connector_point.x == pytest.approx(3.0)
        boom = records[1]
        assert boom.description == "Sprayer_Boom"
        assert boom.dynamic_refs() == [DynamicRef("DET-6", DDI_OFFSET_Y)]

    def test_roles_swapped_when_implement_listed_first(self, tmp_path):
        text = task_xml(connections=(cnn("DVC-2", "DET-5", "DVC-1", "DET-3"),))
        doc, task = _load(tmp_path, text)
        records, ok = GeometryResolver(doc.graph).resolve(task)
        assert ok
        root = next(r for r in records if r.element == "DET-4")
        assert root.connection is ConnectionType.TOWED
        assert root.tractor_connector_point.x == pytest.approx(-2.0)
        assert root.implement_connector_point.x == pytest.approx(3.0)

    def test_mounted_device(self, tmp_path):
        doc, task = _load(tmp_path, task_xml(dans=("DVC-1",)))
        records, ok = GeometryResolver(doc.graph).resolve(task)
        assert ok
        assert [r.element for r in records] == ["DET-1", "DET-2", "DET-3", ORIGINAL_ELEMENT]
        assert all(r.connection is ConnectionType.MOUNTED for r in records)
        assert records[0].tractor_navigation_point.x == pytest.approx(1.0)
        assert records[2].implement_element_point.x == pytest.approx(-2.0)

    def test_yaw_reference_from_logged_heading(self, tmp_path):
        tractor = (
            tractor_dvc()
            .replace("</DVC>", dpd(14, DDI_YAW, "Heading") + "</DVC>")
            .replace('<DOR A="13"/>', '<DOR A="13"/><DOR A="14"/>')
        )
        doc, task = _load(tmp_path, task_xml(dans=("DVC-1",), devices=(tractor, sprayer_dvc())))
        records, _ = GeometryResolver(doc.graph).resolve(task)
        assert records[0].yaw_reference == DynamicRef("DET-2", DDI_YAW)

    def test_connection_without_antenna_is_skipped(self, tmp_path):
        other = dvc("DVC-3", "Cart", det("DET-30", 1, 1, 0, "Cart"), det("DET-31", 6, 2, 1, "Eye"))
        text = task_xml(
            dans=("DVC-2", "DVC-3"),
            connections=(cnn("DVC-2", "DET-5", "DVC-3", "DET-31"),),
            devices=(tractor_dvc(), sprayer_dvc(), other),
        )
        doc, task = _load(tmp_path, text)
        records, ok = GeometryResolver(doc.graph).resolve(task)
        assert ok
        assert [r.element for r in records] == [ORIGINAL_ELEMENT]

    def test_broken_connection_keeps_original(self, tmp_path):
        doc, task = _load(tmp_path, task_xml(connections=(cnn("DVC-1", "DET-99", "DVC-2", "DET-5"),)))
        records, ok = GeometryResolver(doc.graph).resolve(task)
        assert not ok
        assert records[-1].is_original
        # the tractor is still traced as a mounted device
        assert "DET-1" in [r.element for r in records]

    def test_original_always_last(self, tmp_path):
        doc, task = _load(tmp_path, task_xml(dans=(), devices=()))
        records, ok = GeometryResolver(doc.graph).resolve(task)
        assert ok
        assert len(records) == 1 and records[0].is_original

    def test_implement_without_root_keeps_built_records(self, tmp_path):
        rootless = sprayer_dvc().replace(
            '<DET A="DET-4" B="1" C="1" D="Frame" E="1" F="0">',
            '<DET A="DET-4" B="2" C="1" D="Frame" E="1" F="9">',
        )
        text = task_xml(
            connections=(cnn("DVC-1", "DET-3", "DVC-2", "DET-5"),),
            devices=(tractor_dvc(), rootless),
        )
        doc, task = _load(tmp_path, text)
        records, ok = GeometryResolver(doc.graph).resolve(task)
        assert not ok
        assert [r.element for r in records] == ["DET-5", "DET-6", ORIGINAL_ELEMENT]
        assert all(r.connection is ConnectionType.TOWED for r in records[:-1])

    def test_same_designators_get_distinct_descriptions(self, tmp_path):
        sprayer = sprayer_dvc().replace(
            "</DVC>", det("DET-8", 2, 5, 1, "Boom", refs=(25,)) + dpt(25, DDI_OFFSET_X, -5000) + "</DVC>"
        )
        text = task_xml(
            connections=(cnn("DVC-1", "DET-3", "DVC-2", "DET-5"),),
            devices=(tractor_dvc(), sprayer),
        )
        doc, task = _load(tmp_path, text)
        records, _ = GeometryResolver(doc.graph).resolve(task)
        desc = {r.element: r.description for r in records}
        assert desc["DET-6"] == "Sprayer_Boom_DET-6"
        assert desc["DET-8"] == "Sprayer_Boom_DET-8"
        assert desc["DET-5"] == "Sprayer_Drawbar"
        assert len(set(desc.values())) == len(desc)


def _data_channels():
    return ChannelSet([
        Channel.process_data("Sprayer_Frame_Rate", DynamicRef("DET-4", DDI_RATE)),
        Channel.process_data("Sprayer_Boom_BoomOffsetY", DynamicRef("DET-6", DDI_OFFSET_Y)),
        Channel.process_data("Sprayer_Nozzle_State", DynamicRef("DET-7", DDI_STATE)),
        Channel.process_data("Tractor_GPS_x", DynamicRef("DET-2", DDI_OFFSET_X)),
    ])


class TestPartition:
    """Handing decoded channels to records"""

    @pytest.fixture
    def setup(self, tmp_path):
        doc, task = _load(tmp_path, standard_task_xml())
        records, _ = GeometryResolver(doc.graph).resolve(task)
        return doc.graph, records

    def test_channels_go_to_own_or_ancestor_record(self, setup):
        graph, records = setup
        header = ChannelSet([Channel("PositionNorth", ScalarKind.INT32, [1])])
        out = {r.element: r for r in partition_channels(records, header, _data_channels(), graph)}
        assert out["DET-4"].data_channels.names == ["Sprayer_Frame_Rate"]
        assert out["DET-6"].data_channels.names == ["Sprayer_Boom_BoomOffsetY", "Sprayer_Nozzle_State"]
        assert out[ORIGINAL_ELEMENT].data_channels.names == ["Tractor_GPS_x"]
        assert out["DET-5"].data_channels.names == []

    def test_records_are_fresh_copies(self, setup):
        graph, records = setup
        partition_channels(records, ChannelSet(), _data_channels(), graph)
        assert all(len(r.data_channels) == 0 for r in records)

    def test_referenced_channel_is_shared(self, setup):
        graph, records = setup
        ref = DynamicRef("DET-6", DDI_OFFSET_Y)
        records = [
            replace(r, implement_element_point=Point3(y_ref=ref)) if r.element == "DET-5" else r
            for r in records
        ]
        out = {r.element: r for r in partition_channels(records, ChannelSet(), _data_channels(), graph)}
        assert out["DET-5"].data_channels.names == ["Sprayer_Boom_BoomOffsetY"]
        assert "Sprayer_Boom_BoomOffsetY" in out["DET-6"].data_channels.names

    def test_without_simulation_only_original(self, setup):
        graph, records = setup
        header = ChannelSet([Channel("PositionNorth", ScalarKind.INT32, [1])])
        out = partition_channels(records, header, _data_channels(), graph, simulate=False)
        assert len(out) == 1 and out[0].is_original
        assert len(out[0].data_channels) == 4
        assert out[0].header_channels.names == ["PositionNorth"]
        assert out[0].header_channels.get("PositionNorth") is not header.get("PositionNorth")
