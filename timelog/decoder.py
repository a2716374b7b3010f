from __future__ import annotations

"""
Binary time-log decoder.

Each record in TLGnnnnn.BIN is:
    header fields   one value per header channel, in schema order
    N               uint8, number of changed process-data values
    N x (idx, val)  uint8 DLV index, int32 value
Process data carries forward: a channel absent from a record keeps its
previous value.
"""

import struct
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import BinaryIO, List, Union
import xml.etree.ElementTree as ET

from common.errors import BinaryFormatError
from common.logging_setup import get_logger
from common.types import Channel, ChannelSet, ScalarKind
from taskdata.graph import DeviceGraph
from timelog.schema import DATE_CHANNELS, TIME_CHANNELS, TimeLogSchema, build_schema


log = get_logger("timelog.decoder")

ISO_EPOCH = date(1980, 1, 1)
_MS_PER_DAY = 86_400_000

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_DELTA = struct.Struct("<Bi")


class _Truncated(Exception):
    """Stream ended inside a record."""


def date_string(days: int) -> str:
    return (ISO_EPOCH + timedelta(days=days)).isoformat()


def time_of_day_string(ms: int) -> str:
    t = (datetime.min + timedelta(milliseconds=ms % _MS_PER_DAY)).time()
    return t.isoformat(timespec="milliseconds")


@dataclass
class DecodeResult:
    header: ChannelSet
    data: ChannelSet
    ok: bool = True
    records: int = 0


class _Reader:
    def __init__(self, buf: bytes):
        self.buf = buf
        self.pos = 0

    @property
    def exhausted(self) -> bool:
        return self.pos >= len(self.buf)

    def unpack(self, st: struct.Struct):
        end = self.pos + st.size
        if end > len(self.buf):
            raise _Truncated()
        vals = st.unpack_from(self.buf, self.pos)
        self.pos = end
        return vals


def _field_reader(channel: Channel):
    """Pick the decode function for one header channel (closed dispatch on name/kind)."""
    if channel.name in DATE_CHANNELS:
        return lambda r: date_string(r.unpack(_U16)[0])
    if channel.name in TIME_CHANNELS:
        return lambda r: time_of_day_string(r.unpack(_U32)[0])
    if channel.kind is ScalarKind.STRING:
        raise BinaryFormatError(f"No binary encoding for string channel {channel.name!r}")
    st = struct.Struct(channel.kind.fmt)
    return lambda r: r.unpack(st)[0]


class TimeLogDecoder:
    """
    Usage:
        result = TimeLogDecoder(doc.graph).decode(tim, open(bin_path, "rb"))
    """

    def __init__(self, graph: DeviceGraph):
        self.graph = graph

    def decode(self, tim: ET.Element, stream: Union[BinaryIO, bytes]) -> DecodeResult:
        schema = build_schema(tim, self.graph)
        buf = stream if isinstance(stream, (bytes, bytearray)) else stream.read()
        return decode_records(schema, bytes(buf))


def decode_records(schema: TimeLogSchema, buf: bytes) -> DecodeResult:
    """
    Decode `buf` into the schema's channel sets.
    Never raises for malformed input: failures come back with ok=False.
    """
    header, data = schema.header, schema.data
    result = DecodeResult(header=header, data=data)
    reader = _Reader(buf)

    if not reader.exhausted and len(header) == 0:
        log.error("No header channels declared for binary data")
        result.ok = False
        return _drop_placeholder(result)

    try:
        readers = [_field_reader(ch) for ch in header]
    except BinaryFormatError:
        log.exception("Unsupported header layout")
        result.ok = False
        return _drop_placeholder(result)

    last: List[int] = [ch.last for ch in data]
    while not reader.exhausted:
        start = reader.pos
        try:
            row = [read(reader) for read in readers]
            changed = [reader.unpack(_DELTA) for _ in range(reader.unpack(_U8)[0])]
        except _Truncated:
            log.warning(
                "Truncated final record discarded",
                extra={"extra": {"offset": start, "size": len(buf), "records": result.records}},
            )
            break

        for idx, value in changed:
            if idx >= len(schema.slots):
                log.error(
                    "Delta index out of range",
                    extra={"extra": {"offset": start, "index": idx, "declared": len(schema.slots)}},
                )
                result.ok = False
                return _drop_placeholder(result)
            last[schema.slots[idx]] = value

        for ch, v in zip(header, row):
            ch.append(v)
        for ch, v in zip(data, last):
            ch.append(v)
        result.records += 1

    log.info("Time-log decoded", extra={"extra": {"records": result.records, "bytes": len(buf)}})
    return _drop_placeholder(result)


def _drop_placeholder(result: DecodeResult) -> DecodeResult:
    for ch in result.data:
        if ch.values:
            del ch.values[0]
    return result
