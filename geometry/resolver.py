from __future__ import annotations

"""
Geometry resolution: from the device descriptions of a task to one
GeometryRecord per instrumented point.

Two shapes are recognized:
  - Towed: a CNN joins a device carrying the GNSS antenna (DET type 7) to an
    implement; implement points follow the hitch.
  - Mounted: any other device carrying an antenna; its points share the
    antenna's heading directly.
A synthetic "original" record (the raw antenna trace) is always appended.
"""

from collections import Counter
from typing import List, Optional, Set, Tuple

from common.errors import GeometryResolutionError
from common.logging_setup import get_logger
from common.types import ORIGINAL_ELEMENT, ConnectionType, DynamicRef, GeometryRecord, Point3, iso_mm_to_m
from taskdata.graph import (
    DDI_OFFSET_X,
    DDI_OFFSET_Y,
    DDI_OFFSET_Z,
    DDI_YAW,
    Connection,
    DeviceGraph,
)
from taskdata.loader import Task


log = get_logger("geometry.resolver")

_OFFSET_DDIS = (DDI_OFFSET_X, DDI_OFFSET_Y, DDI_OFFSET_Z)


class GeometryResolver:
    """
    Builds GeometryRecords for a task.

    Usage:
        records, ok = GeometryResolver(doc.graph).resolve(task)
    """

    def __init__(self, graph: DeviceGraph):
        self.graph = graph

    # -------- offsets --------

    def extract_offset(self, element_id: str) -> Point3:
        """
        Offset of an element relative to its device reference point (meters, ENU-signed).
        Per axis: logged DPD -> DynamicRef, else DPT constant, else 0.
        """
        vals = [0.0, 0.0, 0.0]
        refs: List[Optional[DynamicRef]] = [None, None, None]
        for axis, ddi in enumerate(_OFFSET_DDIS):
            if self.graph.process_data(element_id, ddi) is not None:
                refs[axis] = DynamicRef(element_id, ddi)
                continue
            prop = self.graph.device_property(element_id, ddi)
            if prop is not None:
                vals[axis] = iso_mm_to_m(axis, prop.value)
        return Point3(vals[0], vals[1], vals[2], refs[0], refs[1], refs[2])

    def has_offset(self, element_id: str) -> bool:
        return not self.extract_offset(element_id).is_default()

    def yaw_reference(self, device_id: str) -> Optional[DynamicRef]:
        det = self.graph.find_process_data(device_id, DDI_YAW)
        return DynamicRef(det.id, DDI_YAW) if det else None

    # -------- resolution --------

    def resolve(self, task: Task) -> Tuple[List[GeometryRecord], bool]:
        """
        Returns (records, ok). Never raises: a failing connection or device is
        logged, ok becomes False and whatever was built so far is kept.
        The "original" record is always the last entry.
        """
        records: List[GeometryRecord] = []
        covered: Set[str] = set()
        ok = True

        for cnn in task.connections:
            try:
                built = self._towed_records(cnn)
            except Exception:
                log.exception("Connection geometry failed", extra={"extra": {"task": task.id, "connection": str(cnn)}})
                ok = False
                continue
            if built is None:
                continue
            tractor_id, implement_id, recs, complete = built
            ok = ok and complete
            covered.update((tractor_id, implement_id))
            _extend_unique(records, recs)

        for device_id in self._task_devices(task):
            if device_id in covered or not self.graph.navigation_elements(device_id):
                continue
            try:
                _extend_unique(records, self._mounted_records(device_id))
                covered.add(device_id)
            except Exception:
                log.exception("Mounted geometry failed", extra={"extra": {"task": task.id, "device": device_id}})
                ok = False

        records.append(GeometryRecord.original())

        for rec in records:
            rec.description = self.describe(rec.element)
        counts = Counter(rec.description for rec in records)
        for rec in records:
            # same designators would give the same output file name
            if counts[rec.description] > 1 and not rec.is_original:
                rec.description = f"{rec.description}_{rec.element}"

        log.info(
            "Geometry resolved",
            extra={"extra": {"task": task.id, "ok": ok, "records": [r.to_meta() for r in records]}},
        )
        return records, ok

    def describe(self, element_id: str) -> str:
        det = self.graph.element(element_id)
        dev = self.graph.device_of(element_id)
        if det is None or dev is None:
            return "" if element_id == ORIGINAL_ELEMENT else element_id
        return f"{dev.designator or dev.id}_{det.designator or det.id}"

    # -------- internals --------

    def _task_devices(self, task: Task) -> List[str]:
        if task.device_ids:
            return [d for d in task.device_ids if self.graph.device(d) is not None]
        return [d.id for d in self.graph.devices()]

    def _has_antenna(self, device_id: str) -> bool:
        return bool(self.graph.navigation_elements(device_id))

    def _navigation_point(self, device_id: str) -> Point3:
        navs = self.graph.navigation_elements(device_id)
        if not navs:
            raise GeometryResolutionError(f"Device {device_id} has no navigation element")
        if len(navs) > 1:
            log.warning("Several navigation elements, using the first", extra={"extra": {"device": device_id}})
        return self.extract_offset(navs[0].id)

    def _towed_records(self, cnn: Connection) -> Optional[Tuple[str, str, List[GeometryRecord], bool]]:
        """
        (tractor device, implement device, records, complete) for one CNN, or
        None when neither side carries a GNSS receiver. An implement without a
        root element keeps its offset-bearing records and reports complete=False.
        """
        tractor_dev, tractor_cnn_el = cnn.device_0, cnn.element_0
        implement_dev, implement_cnn_el = cnn.device_1, cnn.element_1
        # Assumed: the device carrying the antenna is the towing vehicle.
        if not self._has_antenna(tractor_dev):
            tractor_dev, tractor_cnn_el, implement_dev, implement_cnn_el = (
                implement_dev, implement_cnn_el, tractor_dev, tractor_cnn_el
            )
            if not self._has_antenna(tractor_dev):
                log.warning("Connection without GNSS device skipped", extra={"extra": {"connection": str(cnn)}})
                return None

        for det_id in (tractor_cnn_el, implement_cnn_el):
            if self.graph.element(det_id) is None:
                raise GeometryResolutionError(f"Connection references unknown element {det_id}")
        if self.graph.device(implement_dev) is None:
            raise GeometryResolutionError(f"Connection references unknown device {implement_dev}")

        nav = self._navigation_point(tractor_dev)
        tcp = self.extract_offset(tractor_cnn_el)
        icp = self.extract_offset(implement_cnn_el)
        yaw = self.yaw_reference(tractor_dev)

        def towed(element_id: str) -> GeometryRecord:
            return GeometryRecord(
                element=element_id,
                connection=ConnectionType.TOWED,
                tractor_navigation_point=nav,
                tractor_connector_point=tcp,
                implement_connector_point=icp,
                implement_element_point=self.extract_offset(element_id),
                yaw_reference=yaw,
            )

        recs = [towed(det.id) for det in self.graph.elements_of(implement_dev) if self.has_offset(det.id)]
        root = self.graph.root_element(implement_dev)
        if root is None:
            log.error("Implement has no root element", extra={"extra": {"device": implement_dev}})
            return tractor_dev, implement_dev, recs, False
        recs.append(towed(root.id))
        return tractor_dev, implement_dev, recs, True

    def _mounted_records(self, device_id: str) -> List[GeometryRecord]:
        nav = self._navigation_point(device_id)
        yaw = self.yaw_reference(device_id)

        def mounted(element_id: str) -> GeometryRecord:
            return GeometryRecord(
                element=element_id,
                connection=ConnectionType.MOUNTED,
                tractor_navigation_point=nav,
                implement_element_point=self.extract_offset(element_id),
                yaw_reference=yaw,
            )

        root = self.graph.root_element(device_id)
        if root is None:
            raise GeometryResolutionError(f"Device {device_id} has no root element")
        recs = [mounted(root.id)]
        recs.extend(mounted(det.id) for det in self.graph.elements_of(device_id) if self.has_offset(det.id))
        return recs


def _extend_unique(records: List[GeometryRecord], new: List[GeometryRecord]) -> None:
    seen = {r.element for r in records}
    for rec in new:
        if rec.element not in seen:
            records.append(rec)
            seen.add(rec.element)
