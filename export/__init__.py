"""
Output writers: ';'-separated CSV and GML point features, plus the
farm_field_task naming scheme for output files.
"""
