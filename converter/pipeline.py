from __future__ import annotations

"""
Task file -> GML/CSV conversion pipeline.

For each task: resolve the implement geometry once; for each of its time-logs:
decode the binary, hand the process-data channels to the geometry records,
simulate the trajectory of every record and write one file per record.
A failing task or time-log is logged and skipped; the exit status reports
whether everything converted.

Examples:
    python -m converter.pipeline /media/usb/TASKDATA/TASKDATA.XML -o=CSV
    python -m converter.pipeline TASKDATA.XML -output=GML -cartesian
    python -m converter.pipeline TASKDATA.XML -n --out-dir out/
"""

import argparse
import sys
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Sequence

from common.config import OUTPUT_FORMATS, ConverterConfig, load_config
from common.errors import ConverterError
from common.logging_setup import get_logger, setup_logging
from common.types import GeometryRecord
from export.csv_writer import write_csv
from export.gml import write_gml
from export.naming import output_filename
from geometry.partition import partition_channels
from geometry.resolver import GeometryResolver
from simulation.trajectory import simulate
from taskdata.loader import Task, TaskDocument, load_task_document, load_timelog_header
from timelog.decoder import TimeLogDecoder


log = get_logger("converter")

DEFAULT_TASKFILE = "./TASKDATA.XML"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="isobus-convert",
        description="Convert an ISO 11783 task file and its time-logs to GML or CSV point data",
        allow_abbrev=False,
    )
    ap.add_argument("taskfile", nargs="?", default=DEFAULT_TASKFILE, help="Path to TASKDATA.XML")
    ap.add_argument(
        "-o", "-output",
        dest="output",
        type=str.upper,
        choices=OUTPUT_FORMATS,
        default=None,
        help="Output format (default from config, GML)",
    )
    ap.add_argument("-c", "-cartesian", dest="cartesian", action="store_true", default=None,
                    help="Write local Cartesian millimeters instead of WGS84")
    ap.add_argument("-n", "-nosimulation", dest="nosimulation", action="store_true",
                    help="Do not simulate implement geometry; write the antenna trace with all channels")
    ap.add_argument("--config", default=None, help="YAML config (default config/params.yaml if present)")
    ap.add_argument("--out-dir", default=None, help="Output directory (default from config)")
    return ap


def apply_overrides(cfg: ConverterConfig, args: argparse.Namespace) -> ConverterConfig:
    if args.output:
        cfg.output.format = args.output
    if args.cartesian:
        cfg.output.cartesian = True
    if args.nosimulation:
        cfg.simulation.enabled = False
    if args.out_dir:
        cfg.output.directory = args.out_dir
    return cfg


def write_record(
    cfg: ConverterConfig,
    task: Task,
    timelog: str,
    record: GeometryRecord,
    multiple: bool,
) -> Path:
    fmt = cfg.output.format
    description = record.description if multiple else ""
    path = Path(cfg.output.directory) / output_filename(task, record.header_channels, timelog, fmt, description)
    if fmt == "CSV":
        write_csv(path, record.header_channels, record.data_channels)
    else:
        write_gml(path, record.header_channels, record.data_channels, task.name or task.id,
                  cartesian=cfg.output.cartesian)
    return path


def convert_timelog(
    doc: TaskDocument,
    task: Task,
    timelog: str,
    geometry: List[GeometryRecord],
    cfg: ConverterConfig,
) -> bool:
    header_path, bin_path = doc.timelog_files(timelog)
    tim = load_timelog_header(header_path)
    with open(bin_path, "rb") as f:
        decoded = TimeLogDecoder(doc.graph).decode(tim, f)
    if not decoded.ok:
        log.error("Time-log decode failed", extra={"extra": {"task": task.id, "timelog": timelog}})
        return False

    simulated = cfg.simulation.enabled
    records = partition_channels(geometry, decoded.header, decoded.data, doc.graph, simulate=simulated)
    ok = True
    if simulated or cfg.output.cartesian:
        ok = simulate(decoded.header, records, cfg.simulation, cartesian=cfg.output.cartesian)

    for rec in records:
        path = write_record(cfg, task, timelog, rec, multiple=len(records) > 1)
        log.info("Output written", extra={"extra": {"timelog": timelog, "element": rec.element, "path": str(path)}})
    return ok


def convert_task(doc: TaskDocument, task: Task, cfg: ConverterConfig) -> bool:
    log.info("Converting task", extra={"extra": {"task": task.id, "name": task.name, "timelogs": list(task.timelogs)}})
    if cfg.simulation.enabled:
        geometry, ok = GeometryResolver(doc.graph).resolve(task)
    else:
        geometry, ok = [GeometryRecord.original()], True

    for timelog in task.timelogs:
        try:
            ok = convert_timelog(doc, task, timelog, geometry, cfg) and ok
        except (ConverterError, OSError, ET.ParseError, ValueError):
            log.exception("Time-log conversion failed", extra={"extra": {"task": task.id, "timelog": timelog}})
            ok = False
    return ok


def run(cfg: ConverterConfig, taskfile: str) -> bool:
    try:
        doc = load_task_document(taskfile)
    except (ConverterError, OSError):
        log.exception("Cannot read task file", extra={"extra": {"path": taskfile}})
        return False

    ok = True
    for task in doc.tasks:
        ok = convert_task(doc, task, cfg) and ok
    log.info("Conversion finished", extra={"extra": {"ok": ok, "tasks": len(doc.tasks)}})
    return ok


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = apply_overrides(load_config(args.config), args)
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    setup_logging(cfg.log_level, force=True)
    return 0 if run(cfg, args.taskfile) else 1


if __name__ == "__main__":
    sys.exit(main())
