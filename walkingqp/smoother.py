"""Minimum-jerk smoothing of vector signals sampled at a fixed period."""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike

__all__ = ["MinJerkSmoother"]


class MinJerkSmoother:
    """Moves a vector towards a target along a minimum-jerk profile.

    At every step a fifth-order polynomial is planned from the current
    position, velocity and acceleration to the target (reached at rest)
    over ``smoothing_time`` and evaluated one ``sample_time`` ahead.
    """

    def __init__(self, initial: ArrayLike, sample_time: float, smoothing_time: float) -> None:
        if sample_time <= 0:
            raise ValueError("sample_time must be positive")
        if smoothing_time <= 0:
            raise ValueError("smoothing_time must be positive")
        self.sample_time = float(sample_time)
        self.smoothing_time = float(smoothing_time)
        self.reset(initial)

    @property
    def size(self) -> int:
        return self.position.size

    def reset(self, value: ArrayLike) -> None:
        """Place the smoother at rest at ``value``."""
        self.position = np.atleast_1d(np.asarray(value, dtype=float)).copy()
        self.velocity = np.zeros_like(self.position)
        self.acceleration = np.zeros_like(self.position)

    def step(self, target: ArrayLike) -> np.ndarray:
        """Advance one sample towards ``target`` and return the new position."""
        target = np.atleast_1d(np.asarray(target, dtype=float))
        if target.shape != self.position.shape:
            raise ValueError(
                f"target has shape {target.shape}, expected {self.position.shape}"
            )

        horizon = self.smoothing_time
        t = self.sample_time
        if t >= horizon:
            self.position = target.copy()
            self.velocity = np.zeros_like(target)
            self.acceleration = np.zeros_like(target)
            return self.position.copy()

        x0, v0, a0 = self.position, self.velocity, self.acceleration
        delta = target - x0
        c3 = (20.0 * delta - 12.0 * v0 * horizon - 3.0 * a0 * horizon**2) / (2.0 * horizon**3)
        c4 = (-30.0 * delta + 16.0 * v0 * horizon + 3.0 * a0 * horizon**2) / (2.0 * horizon**4)
        c5 = (12.0 * delta - 6.0 * v0 * horizon - a0 * horizon**2) / (2.0 * horizon**5)

        self.position = x0 + v0 * t + 0.5 * a0 * t**2 + c3 * t**3 + c4 * t**4 + c5 * t**5
        self.velocity = v0 + a0 * t + 3.0 * c3 * t**2 + 4.0 * c4 * t**3 + 5.0 * c5 * t**4
        self.acceleration = a0 + 6.0 * c3 * t + 12.0 * c4 * t**2 + 20.0 * c5 * t**3
        return self.position.copy()