from __future__ import annotations

"""
Read-only view of the device descriptions (DVC trees) of an ISO 11783 task file.

Nodes are parsed once into frozen dataclasses. Every cross-reference lookup
returns Optional: None means "zero or several candidates", and the caller
decides how to degrade.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
import xml.etree.ElementTree as ET

from common.logging_setup import get_logger


log = get_logger("taskdata.graph")

DEVICE_ELEMENT_TYPE = 1
CONNECTOR_ELEMENT_TYPE = 6
NAVIGATION_ELEMENT_TYPE = 7

DDI_OFFSET_X = 0x86
DDI_OFFSET_Y = 0x87
DDI_OFFSET_Z = 0x88
DDI_YAW = 0x90

T = TypeVar("T")


def parse_ddi(text: str) -> int:
    """DDIs are written as hex strings in ISO XML ("0086")."""
    return int(text.strip(), 16)


def _ddi(text: Optional[str]) -> int:
    try:
        return parse_ddi(text or "")
    except ValueError:
        return -1


def parse_int(text: Optional[str], default: int = 0) -> int:
    try:
        return int(str(text).strip())
    except (TypeError, ValueError):
        return default


def _single(items: Sequence[T], what: str) -> Optional[T]:
    if len(items) == 1:
        return items[0]
    if len(items) > 1:
        log.warning("Ambiguous reference", extra={"extra": {"what": what, "matches": len(items)}})
    return None


@dataclass(frozen=True)
class ProcessDataDefinition:
    """DPD: a value the device can log (dynamic)."""
    object_id: int
    ddi: int
    designator: str = ""


@dataclass(frozen=True)
class DeviceProperty:
    """DPT: a fixed value declared by the device."""
    object_id: int
    ddi: int
    value: int
    designator: str = ""


@dataclass(frozen=True)
class DeviceElement:
    """DET with its object references (DOR/@A)."""
    id: str
    device_id: str
    type: int
    object_id: int
    parent_object_id: int
    designator: str = ""
    object_refs: Tuple[int, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.parent_object_id == 0


@dataclass(frozen=True)
class Device:
    id: str
    designator: str
    elements: Tuple[DeviceElement, ...]
    process_data: Tuple[ProcessDataDefinition, ...]
    properties: Tuple[DeviceProperty, ...]


@dataclass(frozen=True)
class Connection:
    """CNN: hitch between a connector element of each of two devices."""
    device_0: str
    element_0: str
    device_1: str
    element_1: str


def parse_device(dvc: ET.Element) -> Device:
    dev_id = dvc.get("A", "")
    elements = []
    for det in dvc.iter("DET"):
        refs = tuple(parse_int(dor.get("A"), -1) for dor in det.iter("DOR"))
        elements.append(
            DeviceElement(
                id=det.get("A", ""),
                device_id=dev_id,
                type=parse_int(det.get("B")),
                object_id=parse_int(det.get("C")),
                parent_object_id=parse_int(det.get("F")),
                designator=det.get("D", ""),
                object_refs=refs,
            )
        )
    dpds = tuple(
        ProcessDataDefinition(parse_int(dpd.get("A")), _ddi(dpd.get("B")), dpd.get("E", ""))
        for dpd in dvc.iter("DPD")
    )
    dpts = tuple(
        DeviceProperty(parse_int(dpt.get("A")), _ddi(dpt.get("B")), parse_int(dpt.get("C")), dpt.get("D", ""))
        for dpt in dvc.iter("DPT")
    )
    return Device(id=dev_id, designator=dvc.get("B", ""), elements=tuple(elements),
                  process_data=dpds, properties=dpts)


def parse_connection(cnn: ET.Element) -> Connection:
    return Connection(
        device_0=cnn.get("A", ""),
        element_0=cnn.get("B", ""),
        device_1=cnn.get("C", ""),
        element_1=cnn.get("D", ""),
    )


class DeviceGraph:
    """Index over all devices of a (merged) task document."""

    def __init__(self, devices: Iterable[Device]):
        self._devices: Dict[str, Device] = {}
        self._elements: Dict[str, DeviceElement] = {}
        for dev in devices:
            self._devices[dev.id] = dev
            for det in dev.elements:
                self._elements[det.id] = det

    @classmethod
    def from_xml(cls, root: ET.Element) -> "DeviceGraph":
        return cls(parse_device(dvc) for dvc in root.iter("DVC"))

    # -------- nodes --------

    def devices(self) -> List[Device]:
        return list(self._devices.values())

    def device(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def element(self, element_id: str) -> Optional[DeviceElement]:
        return self._elements.get(element_id)

    def device_of(self, element_id: str) -> Optional[Device]:
        det = self._elements.get(element_id)
        return self._devices.get(det.device_id) if det else None

    def elements_of(self, device_id: str) -> List[DeviceElement]:
        dev = self._devices.get(device_id)
        return list(dev.elements) if dev else []

    def root_element(self, device_id: str) -> Optional[DeviceElement]:
        elements = self.elements_of(device_id)
        root = _single([e for e in elements if e.is_root], f"root element of {device_id}")
        if root is None:
            root = _single([e for e in elements if e.type == DEVICE_ELEMENT_TYPE], f"device element of {device_id}")
        return root

    def navigation_elements(self, device_id: str) -> List[DeviceElement]:
        return [e for e in self.elements_of(device_id) if e.type == NAVIGATION_ELEMENT_TYPE]

    def parent(self, element_id: str) -> Optional[DeviceElement]:
        det = self._elements.get(element_id)
        if det is None or det.is_root:
            return None
        return _single(
            [e for e in self.elements_of(det.device_id) if e.object_id == det.parent_object_id and e.id != det.id],
            f"parent of {element_id}",
        )

    def ancestors(self, element_id: str) -> List[DeviceElement]:
        """Parent chain, nearest first. Stops on cycles."""
        out: List[DeviceElement] = []
        seen = {element_id}
        cur = self.parent(element_id)
        while cur is not None and cur.id not in seen:
            out.append(cur)
            seen.add(cur.id)
            cur = self.parent(cur.id)
        return out

    # -------- process data --------

    def process_data(self, element_id: str, ddi: int) -> Optional[ProcessDataDefinition]:
        """The DPD with `ddi` referenced by the element's DORs, if exactly one exists."""
        det = self._elements.get(element_id)
        dev = self._devices.get(det.device_id) if det else None
        if det is None or dev is None:
            return None
        return _single(
            [p for p in dev.process_data if p.object_id in det.object_refs and p.ddi == ddi],
            f"DPD {ddi:04X} of {element_id}",
        )

    def device_property(self, element_id: str, ddi: int) -> Optional[DeviceProperty]:
        """The DPT with `ddi` referenced by the element's DORs, if exactly one exists."""
        det = self._elements.get(element_id)
        dev = self._devices.get(det.device_id) if det else None
        if det is None or dev is None:
            return None
        return _single(
            [p for p in dev.properties if p.object_id in det.object_refs and p.ddi == ddi],
            f"DPT {ddi:04X} of {element_id}",
        )

    def find_process_data(self, device_id: str, ddi: int) -> Optional[DeviceElement]:
        """First element of the device that logs `ddi`."""
        for det in self.elements_of(device_id):
            if self.process_data(det.id, ddi) is not None:
                return det
        return None
