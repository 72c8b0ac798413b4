"""Quadratic-programming inverse kinematics for biped walking, with configuration and smoothing helpers."""

__version__ = "0.1.0"
__all__ = ["config", "smoother", "geometry", "qpik_config", "qpik", "solvers"]