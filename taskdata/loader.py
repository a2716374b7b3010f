from __future__ import annotations

"""
Task document loader.

Reads TASKDATA.XML, merges the externally referenced XFR fragments into the
root, and exposes the tasks and the device graph. File names in ISO task
data are upper case by convention but media written by terminals is not
always consistent, so lookups are case-insensitive.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple
import xml.etree.ElementTree as ET

from common.errors import ConverterError, SchemaMismatchError, TaskDataNotFoundError
from common.logging_setup import get_logger
from taskdata.graph import Connection, DeviceGraph, parse_connection


log = get_logger("taskdata.loader")


@dataclass(frozen=True)
class Task:
    id: str
    name: str
    farm: str = ""
    field: str = ""
    device_ids: Tuple[str, ...] = ()
    connections: Tuple[Connection, ...] = ()
    timelogs: Tuple[str, ...] = ()


@dataclass
class TaskDocument:
    path: Path
    root: ET.Element
    graph: DeviceGraph
    tasks: List[Task] = field(default_factory=list)

    @property
    def directory(self) -> Path:
        return self.path.parent

    def timelog_files(self, name: str) -> Tuple[Path, Path]:
        """(header XML, binary) paths of a TLG entry."""
        return (
            resolve_file(self.directory, name, ".xml"),
            resolve_file(self.directory, name, ".bin"),
        )


def resolve_file(directory: Path, stem: str, suffix: str) -> Path:
    """Find `stem + suffix` in `directory`, ignoring case. Raises TaskDataNotFoundError."""
    exact = directory / f"{stem}{suffix}"
    if exact.is_file():
        return exact
    wanted = f"{stem}{suffix}".lower()
    if directory.is_dir():
        for p in directory.iterdir():
            if p.name.lower() == wanted and p.is_file():
                return p
    raise TaskDataNotFoundError(f"File not found: {exact}")


def parse_xml(path: Path) -> ET.Element:
    if not path.is_file():
        raise TaskDataNotFoundError(f"File not found: {path}")
    try:
        return ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ConverterError(f"Malformed XML in {path}: {e}") from e


def merge_external_fragments(root: ET.Element, directory: Path) -> None:
    """Append the children of every XFR-referenced XFC document to `root`, then drop the XFRs."""
    xfrs = list(root.iter("XFR"))
    for xfr in xfrs:
        frag = parse_xml(resolve_file(directory, xfr.get("A", ""), ".xml"))
        if frag.tag != "XFC":
            log.warning("External file has unexpected root", extra={"extra": {"file": xfr.get("A"), "tag": frag.tag}})
        root.extend(list(frag))
    for parent in list(root.iter()):
        for child in list(parent):
            if child.tag == "XFR":
                parent.remove(child)


def _designator(root: ET.Element, tag: str, ref: Optional[str], attr: str) -> str:
    if not ref:
        return ""
    hits = [e for e in root.iter(tag) if e.get("A") == ref]
    if len(hits) != 1:
        log.warning(
            "Cross-reference not found",
            extra={"extra": {"tag": tag, "ref": ref, "matches": len(hits)}},
        )
        return ""
    return hits[0].get(attr, "")


def parse_task(tsk: ET.Element, root: ET.Element) -> Task:
    return Task(
        id=tsk.get("A", ""),
        name=tsk.get("B", ""),
        farm=_designator(root, "FRM", tsk.get("D"), "B"),
        field=_designator(root, "PFD", tsk.get("E"), "C"),
        device_ids=tuple(dan.get("C", "") for dan in tsk.iter("DAN")),
        connections=tuple(parse_connection(cnn) for cnn in tsk.iter("CNN")),
        timelogs=tuple(tlg.get("A", "") for tlg in tsk.iter("TLG")),
    )


def load_task_document(path: str | Path) -> TaskDocument:
    """
    Load and merge a task file.

    Raises:
        TaskDataNotFoundError: the task file or one of its XFR fragments is missing.
        ConverterError: malformed XML.
    """
    path = Path(path)
    root = parse_xml(path)
    merge_external_fragments(root, path.parent)
    graph = DeviceGraph.from_xml(root)
    tasks = [parse_task(tsk, root) for tsk in root.iter("TSK")]
    log.info(
        "Task file loaded",
        extra={"extra": {"path": str(path), "tasks": len(tasks), "devices": len(graph.devices())}},
    )
    return TaskDocument(path=path, root=root, graph=graph, tasks=tasks)


def load_timelog_header(path: Path) -> ET.Element:
    """Parse a TLG header document and return its TIM element."""
    root = parse_xml(path)
    if root.tag == "TIM":
        return root
    tim = root.find("TIM")
    if tim is None:
        raise SchemaMismatchError(f"No TIM element in {path}")
    return tim
