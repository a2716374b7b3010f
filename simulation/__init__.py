"""
Simulation: heading estimation from the antenna trace and the
mounted/towed kinematics that place every implement point.
"""
from .trajectory import simulate

__all__ = ["simulate"]
