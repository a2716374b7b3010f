from __future__ import annotations

"""
Time-log header schema.

A TLG header document (TIM) declares which fields each binary record carries:
an attribute present with an empty value means "value follows in the binary".
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple
import xml.etree.ElementTree as ET

from common.errors import SchemaMismatchError
from common.logging_setup import get_logger
from common.types import Channel, ChannelSet, DynamicRef, ScalarKind
from taskdata.graph import DeviceGraph, parse_ddi


log = get_logger("timelog.schema")

TIME_CHANNELS = ("TimeStartTOFD", "GpsUtcTime")
DATE_CHANNELS = ("TimeStartDATE", "GpsUtcDate")

# PTN attribute -> (channel name, scalar kind)
POSITION_SLOTS: Tuple[Tuple[str, str, ScalarKind], ...] = (
    ("A", "PositionNorth", ScalarKind.INT32),
    ("B", "PositionEast", ScalarKind.INT32),
    ("C", "PositionUp", ScalarKind.INT32),
    ("D", "PositionStatus", ScalarKind.BYTE),
    ("E", "PDOP", ScalarKind.UINT16),
    ("F", "HDOP", ScalarKind.UINT16),
    ("G", "NumberOfSatellites", ScalarKind.BYTE),
    ("H", "GpsUtcTime", ScalarKind.STRING),
    ("I", "GpsUtcDate", ScalarKind.STRING),
)


@dataclass
class TimeLogSchema:
    """
    Fresh channel sets for one time-log.

    Attributes:
        header: fixed per-record fields in binary order.
        data: one INT32 channel per distinct (element, DDI), each seeded with a
              placeholder row that the decoder drops at the end.
        slots: DLV declaration index (as used in the binary) -> data channel index.
    """
    header: ChannelSet = field(default_factory=ChannelSet)
    data: ChannelSet = field(default_factory=ChannelSet)
    slots: List[int] = field(default_factory=list)


def _declared(el: ET.Element, attr: str) -> bool:
    return el.get(attr) == ""


def dlv_channel_name(graph: DeviceGraph, element_id: str, ddi: int) -> str:
    """
    deviceDesignator_elementDesignator_dpdDesignator for a logged value.
    Raises SchemaMismatchError when the element or its DPD cannot be found.
    """
    det = graph.element(element_id)
    dev = graph.device_of(element_id)
    if det is None or dev is None:
        raise SchemaMismatchError(f"Device element {element_id} not found")
    dpd = graph.process_data(element_id, ddi)
    if dpd is None:
        raise SchemaMismatchError(f"Process data description {ddi:04X} not found for {element_id}")
    return f"{dev.designator or dev.id}_{det.designator or det.id}_{dpd.designator or f'{ddi:04X}'}"


def _seed_value(text: str | None) -> int:
    try:
        return int(str(text).strip())
    except ValueError:
        return 0


def build_schema(tim: ET.Element, graph: DeviceGraph) -> TimeLogSchema:
    schema = TimeLogSchema()

    if _declared(tim, "A"):
        schema.header.add(Channel("TimeStartTOFD", ScalarKind.STRING))
        schema.header.add(Channel("TimeStartDATE", ScalarKind.STRING))
    # TIM B and C are not valid in a time-log header

    for ptn in tim.iter("PTN"):
        for attr, name, kind in POSITION_SLOTS:
            if _declared(ptn, attr):
                schema.header.add(Channel(name, kind))

    index_of: Dict[DynamicRef, int] = {}
    for dlv in tim.iter("DLV"):
        ddi_text = dlv.get("A", "")
        element_id = dlv.get("C", "")
        try:
            ddi = parse_ddi(ddi_text)
        except ValueError:
            log.warning("Invalid DDI in DLV", extra={"extra": {"ddi": ddi_text, "element": element_id}})
            ddi = -1
        ref = DynamicRef(element_id, ddi)

        if ref not in index_of:
            try:
                name = dlv_channel_name(graph, element_id, ddi)
            except SchemaMismatchError as e:
                log.warning("Process data description not found", extra={"extra": {"reason": str(e)}})
                name = f"{element_id}_{ddi_text}"
            index_of[ref] = len(schema.data)
            schema.data.add(Channel.process_data(name, ref, _seed_value(dlv.get("B"))))
        schema.slots.append(index_of[ref])

    log.debug(
        "Time-log schema",
        extra={"extra": {"header": schema.header.names, "data": schema.data.names}},
    )
    return schema
