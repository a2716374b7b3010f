"""
Shared building blocks: WGS-84/ENU transforms, channel and geometry types,
converter errors, YAML configuration and JSON logging.
"""
