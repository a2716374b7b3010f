"""
Task Data — ISO 11783-10 TASKDATA.XML

- graph.py: devices (DVC), their elements (DET), process data (DPD) and
  properties (DPT) as a queryable element tree
- loader.py: reads TASKDATA.XML, merges external XFR/XFC fragments, lists
  tasks (TSK) with their devices, connections and time-logs

Usage:
    from taskdata.loader import load_task_document
    doc = load_task_document("TASKDATA/TASKDATA.XML")
"""
from .loader import load_task_document, load_timelog_header

__all__ = ["load_task_document", "load_timelog_header"]
