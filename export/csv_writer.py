from __future__ import annotations

import csv
from pathlib import Path
from typing import List

from common.logging_setup import get_logger
from common.types import Channel, ChannelSet
from export.naming import sanitize_xml_name


log = get_logger("export.csv")

DELIMITER = ";"


def _rows(header: ChannelSet, data: ChannelSet) -> int:
    n = header.row_count
    if len(data) and data.row_count != n:
        log.warning(
            "Header and data row counts differ, writing the shorter",
            extra={"extra": {"header": n, "data": data.row_count}},
        )
        n = min(n, data.row_count)
    return n


def write_csv(path: str | Path, header: ChannelSet, data: ChannelSet) -> int:
    """
    One ';'-separated line of channel names, then one line per sample.
    Returns the number of data rows written.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    columns: List[Channel] = list(header) + list(data)
    names = [ch.name for ch in header] + [sanitize_xml_name(ch.name) for ch in data]
    n = _rows(header, data)
    with open(p, "w", newline="") as f:
        w = csv.writer(f, delimiter=DELIMITER)
        w.writerow(names)
        for i in range(n):
            w.writerow([ch.value_string(i) for ch in columns])
    log.info("CSV written", extra={"extra": {"path": str(p), "rows": n}})
    return n
