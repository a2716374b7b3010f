"""
Time-log decoding: TLGxxxxx.XML header (TIM/PTN/DLV) plus the TLGxxxxx.BIN
record stream, unpacked into carried-forward channel columns.
"""
from .decoder import TimeLogDecoder, DecodeResult

__all__ = ["TimeLogDecoder", "DecodeResult"]
