from __future__ import annotations

from typing import Dict, List

from common.logging_setup import get_logger
from common.types import ChannelSet, GeometryRecord
from taskdata.graph import DeviceGraph


log = get_logger("geometry.partition")


def partition_channels(
    records: List[GeometryRecord],
    header: ChannelSet,
    data: ChannelSet,
    graph: DeviceGraph,
    *,
    simulate: bool = True,
) -> List[GeometryRecord]:
    """
    Build fresh per-time-log records and hand each decoded data channel to one of them.

    A channel goes to the record of its own element, else to the record of its
    nearest ancestor element, else to the "original" record. A channel that a
    record needs for one of its DynamicRefs, or for the yaw of its towing
    vehicle, is also shared into that record.

    With simulate=False only the "original" record is returned; it receives
    every data channel and a copy of the raw header.
    """
    fresh = [r.for_timelog() for r in records]
    original = next((r for r in fresh if r.is_original), None)
    if original is None:
        original = GeometryRecord.original()
        fresh.append(original)

    if not simulate:
        original.header_channels = header.copy()
        for ch in data:
            original.data_channels.add(ch)
        return [original]

    by_element: Dict[str, GeometryRecord] = {r.element: r for r in fresh if not r.is_original}
    for ch in data:
        owner = by_element.get(ch.ref.element_id) if ch.ref else None
        if owner is None and ch.ref is not None:
            for anc in graph.ancestors(ch.ref.element_id):
                owner = by_element.get(anc.id)
                if owner is not None:
                    break
        (owner or original).data_channels.add(ch)

    for rec in fresh:
        refs = list(rec.dynamic_refs())
        if rec.yaw_reference is not None:
            refs.append(rec.yaw_reference)
        for ref in refs:
            if rec.data_channels.matching(ref):
                continue
            for ch in data.matching(ref):
                rec.data_channels.add(ch)

    log.debug(
        "Channels partitioned",
        extra={"extra": {r.element: r.data_channels.names for r in fresh}},
    )
    return fresh
