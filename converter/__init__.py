"""
Converter — end-to-end command line tool.

Entry point:
    python -m converter.pipeline TASKDATA.XML -o=GML
"""
