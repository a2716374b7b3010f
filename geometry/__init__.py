"""
Implement geometry.

Turns the device graph of a task into GeometryRecords: one per traceable
implement element (mounted or towed) plus the raw antenna trace ("original").
Offsets are fixed values from DPT or references to logged DPD channels.
"""
from .resolver import GeometryResolver
from .partition import partition_channels

__all__ = ["GeometryResolver", "partition_channels"]
