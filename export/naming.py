from __future__ import annotations

import re
from typing import Optional

from common.types import ChannelSet
from taskdata.loader import Task


# Characters no common filesystem accepts in a file name.
_INVALID_FILENAME = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_XML_NAME_INVALID = re.compile(r"[^\w.\-]")


def sanitize_filename(name: str) -> str:
    return _INVALID_FILENAME.sub("", name).rstrip(". ")


def sanitize_xml_name(name: str) -> str:
    """Element/column name: spaces, '&', '+', parens etc. -> '_', leading digit gets an 'X'."""
    out = _XML_NAME_INVALID.sub("_", name)
    if not out or out[0].isdigit() or out[0] in ".-":
        out = "X" + out
    return out


def _first(header: ChannelSet, name: str) -> Optional[str]:
    ch = header.get(name)
    return ch.value_string(0) if ch is not None and len(ch) else None


def output_basename(task: Task, header: ChannelSet, description: str = "") -> str:
    """
    farm_field_task[_description]_DATE_TIME, built from the time-log's first
    TimeStartDATE / TimeStartTOFD values when present.
    """
    parts = [task.farm, task.field, task.name]
    if description:
        parts.append(description)
    date = _first(header, "TimeStartDATE")
    if date:
        parts.append(date)
    tofd = _first(header, "TimeStartTOFD")
    if tofd:
        parts.append(tofd.replace(":", "."))
    return sanitize_filename("_".join(parts))


def output_filename(task: Task, header: ChannelSet, timelog: str, fmt: str, description: str = "") -> str:
    return f"{output_basename(task, header, description)}_{sanitize_filename(timelog)}.{fmt.upper()}"
