from __future__ import annotations

"""
Converter configuration.

Loaded from a YAML file (config/params.yaml by default). Every key is optional;
missing sections fall back to the defaults below. Command-line flags override
whatever the file says.

Example:
    logging:
      level: INFO
    output:
      format: GML          # GML | CSV
      directory: .
      cartesian: false     # local ENU millimeters instead of WGS84
    simulation:
      enabled: true
      heading_min_move_m: 0.1
      smoothing_window: 5
      use_measured_yaw: false
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from common.logging_setup import get_logger


log = get_logger("common.config")

DEFAULT_CONFIG_PATH = "config/params.yaml"
OUTPUT_FORMATS = ("GML", "CSV")


@dataclass
class OutputSettings:
    format: str = "GML"
    directory: str = "."
    cartesian: bool = False

    def __post_init__(self) -> None:
        self.format = str(self.format).upper()
        if self.format not in OUTPUT_FORMATS:
            raise ValueError(f"output.format must be one of {OUTPUT_FORMATS}, got {self.format!r}")


@dataclass
class SimulationSettings:
    enabled: bool = True
    heading_min_move_m: float = 0.1
    smoothing_window: int = 5
    use_measured_yaw: bool = False

    def __post_init__(self) -> None:
        if self.heading_min_move_m <= 0:
            raise ValueError("simulation.heading_min_move_m must be > 0")
        if self.smoothing_window < 1 or self.smoothing_window % 2 == 0:
            raise ValueError("simulation.smoothing_window must be a positive odd number")


@dataclass
class ConverterConfig:
    log_level: str = "INFO"
    output: OutputSettings = field(default_factory=OutputSettings)
    simulation: SimulationSettings = field(default_factory=SimulationSettings)

    @classmethod
    def from_dict(cls, D: Dict[str, Any]) -> "ConverterConfig":
        out = D.get("output", {}) or {}
        sim = D.get("simulation", {}) or {}
        return cls(
            log_level=str((D.get("logging", {}) or {}).get("level", "INFO")),
            output=OutputSettings(
                format=str(out.get("format", "GML")),
                directory=str(out.get("directory", ".")),
                cartesian=bool(out.get("cartesian", False)),
            ),
            simulation=SimulationSettings(
                enabled=bool(sim.get("enabled", True)),
                heading_min_move_m=float(sim.get("heading_min_move_m", 0.1)),
                smoothing_window=int(sim.get("smoothing_window", 5)),
                use_measured_yaw=bool(sim.get("use_measured_yaw", False)),
            ),
        )


def load_config(path: Optional[str] = None) -> ConverterConfig:
    """
    Read the YAML config at `path` (or the default location).
    A missing default file is not an error; a missing explicit path is.
    """
    explicit = path is not None
    path = path or DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        if explicit:
            raise FileNotFoundError(f"Config file not found: {path}")
        log.debug("No config file, using defaults", extra={"extra": {"path": path}})
        return ConverterConfig()
    with open(path, "r") as f:
        try:
            D = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Config file {path} is not valid YAML: {e}") from e
    if not isinstance(D, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return ConverterConfig.from_dict(D)
