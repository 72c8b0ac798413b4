"""Variants of the walking QP-IK that differ in how joint limits are imposed.

:class:`ConstrainedLimitsQPIK` adds one constraint row per actuated joint.
:class:`BoundedLimitsQPIK` bounds the joint velocity variables directly.
In both cases the admissible joint velocity shrinks smoothly (through a
hyperbolic tangent) as a joint approaches one of its position limits.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np
from numpy.typing import ArrayLike

from walkingqp.qpik import WalkingQPIK
from walkingqp.qpik_config import load_settings

__all__ = ["ConstrainedLimitsQPIK", "BoundedLimitsQPIK", "make_solver"]

_BASE_DOFS = 6


class ConstrainedLimitsQPIK(WalkingQPIK):
    """QP-IK in which joint limits are rows of the linear constraint matrix.

    The rows follow the feet (and CoM, when it is a constraint) rows; each
    selects one joint velocity.
    """

    @property
    def _task_constraints(self) -> int:
        return 15 if self.settings.use_com_as_constraint else 12

    def _count_constraints(self) -> int:
        count = self._task_constraints
        if self.settings.use_joint_limits_constraint:
            count += self.settings.actuated_dofs
        return count

    def _initialize_solver_specific(self) -> None:
        self._is_initialized = False
        if not self.settings.use_joint_limits_constraint:
            return
        start = self._task_constraints
        dofs = self.settings.actuated_dofs
        self._constraint_matrix[start : start + dofs, _BASE_DOFS : _BASE_DOFS + dofs] = np.eye(
            dofs
        )

    def _update_joint_velocity_bounds(self) -> None:
        if not self.settings.use_joint_limits_constraint:
            return
        s = self.settings
        start = self._task_constraints
        end = start + s.actuated_dofs
        q = self._joint_position
        self._lower_bound[start:end] = (
            s.k_joint_limit_lower
            * np.tanh(q - self.joint_position_lower_bounds)
            * (-self.joint_velocity_bounds)
        )
        self._upper_bound[start:end] = (
            s.k_joint_limit_upper
            * np.tanh(self.joint_position_upper_bounds - q)
            * self.joint_velocity_bounds
        )

    @property
    def is_initialized(self) -> bool:
        """True once a problem has been solved successfully."""
        return self._is_initialized

    def solve(self) -> np.ndarray:
        """Evaluate and solve the problem; return the desired joint velocities."""
        velocities = super().solve()
        self._is_initialized = True
        return velocities


class BoundedLimitsQPIK(WalkingQPIK):
    """QP-IK in which joint limits bound the joint velocity variables."""

    def _initialize_solver_specific(self) -> None:
        self._min_joint_limit = np.full(self._n, -np.inf)
        self._max_joint_limit = np.full(self._n, np.inf)
        self._is_first_time = True

    def _update_joint_velocity_bounds(self) -> None:
        if not self.settings.use_joint_limits_constraint:
            return
        s = self.settings
        q = self._joint_position
        self._min_joint_limit[_BASE_DOFS:] = np.tanh(
            s.k_joint_limit_lower * (q - self.joint_position_lower_bounds)
        ) * (-self.joint_velocity_bounds)
        self._max_joint_limit[_BASE_DOFS:] = (
            np.tanh(s.k_joint_limit_upper * (self.joint_position_upper_bounds - q))
            * self.joint_velocity_bounds
        )

    def _variable_bounds(self) -> tuple[np.ndarray, np.ndarray]:
        return self._min_joint_limit.copy(), self._max_joint_limit.copy()

    @property
    def variable_lower_bound(self) -> np.ndarray:
        return self._min_joint_limit.copy()

    @property
    def variable_upper_bound(self) -> np.ndarray:
        return self._max_joint_limit.copy()

    @property
    def is_first_time(self) -> bool:
        """True until a problem has been solved successfully."""
        return self._is_first_time

    def solve(self) -> np.ndarray:
        """Evaluate and solve the problem; return the desired joint velocities."""
        velocities = super().solve()
        self._is_first_time = False
        return velocities


def make_solver(
    config: Mapping[str, Any] | None,
    actuated_dofs: int,
    max_joint_velocity: ArrayLike,
    max_joint_position: ArrayLike,
    min_joint_position: ArrayLike,
    limits_as_constraints: bool,
) -> WalkingQPIK:
    """Read the settings and build the requested QP-IK variant."""
    settings = load_settings(config, actuated_dofs)
    cls = ConstrainedLimitsQPIK if limits_as_constraints else BoundedLimitsQPIK
    return cls(settings, max_joint_velocity, max_joint_position, min_joint_position)