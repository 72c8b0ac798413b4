"""Velocity-level inverse kinematics for walking, written as a quadratic program.

The decision variables are the base twist (6 values) followed by one velocity
per actuated joint.  Feet tasks (and optionally the CoM task) are hard
equality constraints; neck orientation, joint regularization, retargeting and
the CoM (when it is not a constraint) enter the cost function.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike
from scipy.optimize import minimize

from walkingqp.geometry import Transform, attitude_error
from walkingqp.qpik_config import QPIKSettings, RetargetingType
from walkingqp.smoother import MinJerkSmoother

__all__ = ["QPIKError", "WalkingQPIK"]

_BASE_DOFS = 6
_FOOT_TASK_SIZE = 6
_COM_TASK_SIZE = 3
_KKT_TOLERANCE = 1e-6


class QPIKError(RuntimeError):
    """Raised when the quadratic program cannot be solved."""


def _vector(value: ArrayLike, size: int, name: str) -> np.ndarray:
    array = np.asarray(value, dtype=float).ravel()
    if array.shape != (size,):
        raise ValueError(f"{name} must have {size} elements, got {array.size}")
    return array.copy()


def _rotation(value: ArrayLike, name: str) -> np.ndarray:
    matrix = np.asarray(value, dtype=float)
    if matrix.shape != (3, 3):
        raise ValueError(f"{name} must be a 3x3 matrix, got shape {matrix.shape}")
    return matrix.copy()


def _saturate(vector: np.ndarray, limit: float) -> np.ndarray:
    """Rescale ``vector`` so its norm does not exceed ``limit``; negative limits disable it."""
    if limit > 0:
        if limit < 1e-10:
            return np.zeros_like(vector)
        return vector / max(1.0, float(np.linalg.norm(vector)) / limit)
    return vector


class WalkingQPIK:
    """Builds and solves the walking QP inverse-kinematics problem."""

    def __init__(
        self,
        settings: QPIKSettings,
        max_joint_velocity: ArrayLike,
        max_joint_position: ArrayLike,
        min_joint_position: ArrayLike,
    ) -> None:
        self.settings = settings
        dofs = settings.actuated_dofs
        self._dofs = dofs
        self._n = dofs + _BASE_DOFS

        velocity = np.asarray(max_joint_velocity, dtype=float).ravel()
        upper = np.asarray(max_joint_position, dtype=float).ravel()
        lower = np.asarray(min_joint_position, dtype=float).ravel()
        if velocity.size != upper.size or lower.size != upper.size:
            raise ValueError("the joint limit vectors must have the same size")
        if velocity.size != dofs:
            raise ValueError("the joint limit vectors must have one value per actuated joint")
        self.joint_velocity_bounds = velocity.copy()
        self.joint_position_upper_bounds = upper.copy()
        self.joint_position_lower_bounds = lower.copy()

        n = self._n
        self._com_jacobian = np.zeros((_COM_TASK_SIZE, n))
        self._neck_jacobian = np.zeros((3, n))
        self._left_foot_jacobian = np.zeros((_FOOT_TASK_SIZE, n))
        self._right_foot_jacobian = np.zeros((_FOOT_TASK_SIZE, n))
        self._left_hand_jacobian = np.zeros((6, n))
        self._right_hand_jacobian = np.zeros((6, n))

        self._joint_position = np.zeros(dofs)
        self._left_foot = Transform()
        self._right_foot = Transform()
        self._left_hand = Transform()
        self._right_hand = Transform()
        self._neck_orientation = np.eye(3)
        self._com_position = np.zeros(3)

        self._desired_left_foot = Transform()
        self._desired_right_foot = Transform()
        self._desired_left_hand = Transform()
        self._desired_right_hand = Transform()
        self._desired_left_foot_twist = np.zeros(6)
        self._desired_right_foot_twist = np.zeros(6)
        self._desired_left_hand_twist = np.zeros(6)
        self._desired_right_hand_twist = np.zeros(6)
        self._desired_neck_orientation = np.eye(3)
        self._desired_com_velocity = np.zeros(3)
        self._desired_com_position = np.zeros(3)
        self._regularization_term = settings.joint_regularization.copy()
        self._retargeting_joint_value = np.zeros(dofs)

        self._left_hand_correction = np.zeros(6)
        self._right_hand_correction = np.zeros(6)

        self._hand_weight_smoother: MinJerkSmoother | None = None
        self._torso_weight_smoother: MinJerkSmoother | None = None
        self._joint_retargeting_weight_smoother: MinJerkSmoother | None = None
        self._joint_regularization_weight_smoother: MinJerkSmoother | None = None
        if settings.retargeting is RetargetingType.HAND and settings.hand is not None:
            hand = settings.hand
            self._hand_weight_smoother = MinJerkSmoother(
                hand.weight_stance, hand.sample_time, hand.smoothing_time
            )
        if settings.retargeting is RetargetingType.JOINT and settings.joint is not None:
            joint = settings.joint
            self._torso_weight_smoother = MinJerkSmoother(
                [joint.torso_weight_stance], joint.sample_time, joint.smoothing_time
            )
            self._joint_retargeting_weight_smoother = MinJerkSmoother(
                joint.retargeting_weight_stance, joint.sample_time, joint.smoothing_time
            )
            self._joint_regularization_weight_smoother = MinJerkSmoother(
                joint.regularization_weight_stance, joint.sample_time, joint.smoothing_time
            )

        self._m = self._count_constraints()
        self._hessian = np.zeros((n, n))
        self._gradient = np.zeros(n)
        self._constraint_matrix = np.zeros((self._m, n))
        self._lower_bound = np.zeros(self._m)
        self._upper_bound = np.zeros(self._m)
        self._solution = np.zeros(n)
        self._desired_joint_velocities = np.zeros(dofs)

        self._initialize_solver_specific()

    # ------------------------------------------------------------------
    # hooks for solver variants
    def _count_constraints(self) -> int:
        count = 2 * _FOOT_TASK_SIZE
        if self.settings.use_com_as_constraint:
            count += _COM_TASK_SIZE
        return count

    def _initialize_solver_specific(self) -> None:
        """Fill matrices that depend on the solver variant."""

    def _update_joint_velocity_bounds(self) -> None:
        """Refresh the joint velocity limits; the base problem has none."""

    def _variable_bounds(self) -> tuple[np.ndarray, np.ndarray]:
        return np.full(self._n, -np.inf), np.full(self._n, np.inf)

    # ------------------------------------------------------------------
    # read-only views
    @property
    def number_of_variables(self) -> int:
        return self._n

    @property
    def number_of_constraints(self) -> int:
        return self._m

    @property
    def retargeting(self) -> RetargetingType:
        return self.settings.retargeting

    @property
    def hessian(self) -> np.ndarray:
        return self._hessian.copy()

    @property
    def gradient(self) -> np.ndarray:
        return self._gradient.copy()

    @property
    def constraint_matrix(self) -> np.ndarray:
        return self._constraint_matrix.copy()

    @property
    def lower_bound(self) -> np.ndarray:
        return self._lower_bound.copy()

    @property
    def upper_bound(self) -> np.ndarray:
        return self._upper_bound.copy()

    @property
    def solution(self) -> np.ndarray:
        return self._solution.copy()

    @property
    def desired_joint_velocities(self) -> np.ndarray:
        return self._desired_joint_velocities.copy()

    # ------------------------------------------------------------------
    # inputs
    def set_robot_state(
        self,
        joint_position: ArrayLike,
        left_foot: Transform,
        right_foot: Transform,
        left_hand: Transform,
        right_hand: Transform,
        neck_orientation: ArrayLike,
        com_position: ArrayLike,
    ) -> None:
        """Store the measured state of the robot."""
        self._joint_position = _vector(joint_position, self._dofs, "joint_position")
        self._left_foot = left_foot
        self._right_foot = right_foot
        self._left_hand = left_hand
        self._right_hand = right_hand
        self._neck_orientation = _rotation(neck_orientation, "neck_orientation")
        self._com_position = _vector(com_position, 3, "com_position")

    def set_phase(self, is_stance_phase: bool) -> None:
        """Advance the weight smoothers towards the stance or walking weights."""
        retargeting = self.settings.retargeting
        if retargeting is RetargetingType.HAND and self._hand_weight_smoother is not None:
            hand = self.settings.hand
            target = hand.weight_stance if is_stance_phase else hand.weight_walking
            self._hand_weight_smoother.step(target)
        elif retargeting is RetargetingType.JOINT and self._torso_weight_smoother is not None:
            joint = self.settings.joint
            if is_stance_phase:
                self._torso_weight_smoother.step([joint.torso_weight_stance])
                self._joint_retargeting_weight_smoother.step(joint.retargeting_weight_stance)
                self._joint_regularization_weight_smoother.step(
                    joint.regularization_weight_stance
                )
            else:
                self._torso_weight_smoother.step([joint.torso_weight_walking])
                self._joint_retargeting_weight_smoother.step(joint.retargeting_weight_walking)
                self._joint_regularization_weight_smoother.step(
                    joint.regularization_weight_walking
                )

    def set_desired_neck_orientation(self, rotation: ArrayLike) -> None:
        """Set the desired neck orientation, rotated by the configured additional rotation."""
        self._desired_neck_orientation = (
            _rotation(rotation, "rotation") @ self.settings.additional_rotation
        )

    def _checked_jacobian(self, jacobian: ArrayLike, rows: int, name: str) -> np.ndarray:
        matrix = np.asarray(jacobian, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != rows:
            raise ValueError(f"the {name} jacobian must have {rows} rows")
        if matrix.shape[1] != self._n:
            raise ValueError(f"the {name} jacobian must have {self._n} columns")
        return matrix.copy()

    def set_com_jacobian(self, jacobian: ArrayLike) -> None:
        self._com_jacobian = self._checked_jacobian(jacobian, 3, "CoM")

    def set_left_foot_jacobian(self, jacobian: ArrayLike) -> None:
        self._left_foot_jacobian = self._checked_jacobian(jacobian, 6, "left foot")

    def set_right_foot_jacobian(self, jacobian: ArrayLike) -> None:
        self._right_foot_jacobian = self._checked_jacobian(jacobian, 6, "right foot")

    def set_left_hand_jacobian(self, jacobian: ArrayLike) -> None:
        """Set the left hand jacobian; ignored unless hand retargeting is used."""
        if self.settings.retargeting is not RetargetingType.HAND:
            return
        self._left_hand_jacobian = self._checked_jacobian(jacobian, 6, "left hand")

    def set_right_hand_jacobian(self, jacobian: ArrayLike) -> None:
        """Set the right hand jacobian; ignored unless hand retargeting is used."""
        if self.settings.retargeting is not RetargetingType.HAND:
            return
        self._right_hand_jacobian = self._checked_jacobian(jacobian, 6, "right hand")

    def set_neck_jacobian(self, jacobian: ArrayLike) -> None:
        """Set the 6-row neck jacobian; only its angular rows are kept."""
        self._neck_jacobian = self._checked_jacobian(jacobian, 6, "neck")[3:6, :]

    def set_desired_joint_position(self, positions: ArrayLike) -> None:
        self._regularization_term = _vector(positions, self._dofs, "positions")

    def set_desired_feet_transformation(self, left: Transform, right: Transform) -> None:
        self._desired_left_foot = left
        self._desired_right_foot = right

    def set_desired_feet_twist(self, left: ArrayLike, right: ArrayLike) -> None:
        self._desired_left_foot_twist = _vector(left, 6, "left")
        self._desired_right_foot_twist = _vector(right, 6, "right")

    def set_desired_hands_transformation(self, left: Transform, right: Transform) -> None:
        """Set the desired hand poses; ignored unless hand retargeting is used."""
        if self.settings.retargeting is not RetargetingType.HAND:
            return
        self._desired_left_hand = left
        self._desired_right_hand = right

    def set_desired_hands_twist(self, left: ArrayLike, right: ArrayLike) -> None:
        self._desired_left_hand_twist = _vector(left, 6, "left")
        self._desired_right_hand_twist = _vector(right, 6, "right")

    def set_desired_retargeting_joint(self, positions: ArrayLike) -> None:
        """Set the retargeted joint positions; ignored unless joint retargeting is used."""
        if self.settings.retargeting is not RetargetingType.JOINT:
            return
        self._retargeting_joint_value = _vector(positions, self._dofs, "positions")

    def set_desired_com_velocity(self, velocity: ArrayLike) -> None:
        self._desired_com_velocity = _vector(velocity, 3, "velocity")

    def set_desired_com_position(self, position: ArrayLike) -> None:
        self._desired_com_position = _vector(position, 3, "position")

    # ------------------------------------------------------------------
    # problem evaluation
    def _evaluate_hessian(self) -> None:
        s = self.settings
        jn = self._neck_jacobian
        if s.retargeting is not RetargetingType.JOINT:
            hessian = jn.T * s.neck_weight @ jn
            hessian[_BASE_DOFS:, _BASE_DOFS:] += np.diag(s.joint_regularization_weights)
        else:
            torso = self._torso_weight_smoother.position[0]
            hessian = jn.T * torso @ jn
            hessian[_BASE_DOFS:, _BASE_DOFS:] += np.diag(
                self._joint_regularization_weight_smoother.position
                + self._joint_retargeting_weight_smoother.position
            )

        if s.retargeting is RetargetingType.HAND:
            weights = np.diag(self._hand_weight_smoother.position)
            hessian += (
                self._left_hand_jacobian.T @ weights @ self._left_hand_jacobian
                + self._right_hand_jacobian.T @ weights @ self._right_hand_jacobian
            )

        if not s.use_com_as_constraint:
            hessian += self._com_jacobian.T @ np.diag(s.com_weight) @ self._com_jacobian

        self._hessian = hessian

    def _hand_correction(self, actual: Transform, desired: Transform) -> np.ndarray:
        hand = self.settings.hand
        linear = hand.k_position * (actual.position - desired.position)
        linear = _saturate(linear, self.settings.max_hand_linear_velocity)
        angular = hand.k_attitude * attitude_error(actual.rotation, desired.rotation)
        angular = _saturate(angular, self.settings.max_hand_angular_velocity)
        return np.concatenate([linear, angular])

    def _evaluate_gradient(self) -> None:
        s = self.settings
        jn = self._neck_jacobian
        q = self._joint_position
        neck_error = attitude_error(self._neck_orientation, self._desired_neck_orientation)

        if s.retargeting is not RetargetingType.JOINT:
            gradient = -jn.T * s.neck_weight @ (-s.k_neck * neck_error)
            gradient[_BASE_DOFS:] -= s.joint_regularization_gains_times_weights * (
                self._regularization_term - q
            )
        else:
            torso = self._torso_weight_smoother.position[0]
            gradient = -jn.T * torso @ (-s.k_neck * neck_error)
            regularization_weight = self._joint_regularization_weight_smoother.position
            gradient[_BASE_DOFS:] += -(s.joint_regularization_gains * regularization_weight) * (
                self._regularization_term - q
            )
            retargeting_weight = self._joint_retargeting_weight_smoother.position
            gradient[_BASE_DOFS:] += -(s.joint.gains * retargeting_weight) * (
                self._retargeting_joint_value - q
            )

        if s.retargeting is RetargetingType.HAND:
            self._left_hand_correction = self._hand_correction(
                self._left_hand, self._desired_left_hand
            )
            self._right_hand_correction = self._hand_correction(
                self._right_hand, self._desired_right_hand
            )
            weights = np.diag(self._hand_weight_smoother.position)
            gradient += -self._left_hand_jacobian.T @ weights @ (-self._left_hand_correction)
            gradient += -self._right_hand_jacobian.T @ weights @ (-self._right_hand_correction)

        if not s.use_com_as_constraint:
            gradient += -self._com_jacobian.T @ (
                s.com_weight
                * (
                    self._desired_com_velocity
                    - s.k_com * (self._com_position - self._desired_com_position)
                )
            )

        self._gradient = gradient

    def _evaluate_constraint_matrix(self) -> None:
        self._constraint_matrix[0:6, :] = self._left_foot_jacobian
        self._constraint_matrix[6:12, :] = self._right_foot_jacobian
        if self.settings.use_com_as_constraint:
            self._constraint_matrix[12:15, :] = self._com_jacobian

    def _foot_correction(self, actual: Transform, desired: Transform) -> np.ndarray:
        s = self.settings
        linear = s.k_foot_position * (actual.position - desired.position)
        angular = s.k_foot_attitude * attitude_error(actual.rotation, desired.rotation)
        return np.concatenate([linear, angular])

    @staticmethod
    def _foot_bound(twist: np.ndarray, correction: np.ndarray) -> np.ndarray:
        if twist[0] == twist[1] and twist[0] == 0:
            return twist.copy()
        return twist - correction

    def _evaluate_bounds(self) -> None:
        s = self.settings
        left_correction = self._foot_correction(self._left_foot, self._desired_left_foot)
        right_correction = self._foot_correction(self._right_foot, self._desired_right_foot)

        left = self._foot_bound(self._desired_left_foot_twist, left_correction)
        right = self._foot_bound(self._desired_right_foot_twist, right_correction)
        self._lower_bound[0:6] = left
        self._upper_bound[0:6] = left
        self._lower_bound[6:12] = right
        self._upper_bound[6:12] = right

        if s.use_com_as_constraint:
            com = self._desired_com_velocity - s.k_com * (
                self._com_position - self._desired_com_position
            )
            self._lower_bound[12:15] = com
            self._upper_bound[12:15] = com

        self._update_joint_velocity_bounds()

    def evaluate(self) -> None:
        """Build the hessian, gradient, constraint matrix and bounds."""
        self._evaluate_hessian()
        self._evaluate_gradient()
        self._evaluate_constraint_matrix()
        self._evaluate_bounds()

    # ------------------------------------------------------------------
    # solution
    def _solve_qp(self) -> np.ndarray:
        n = self._n
        hessian, gradient = self._hessian, self._gradient
        matrix, lower, upper = self._constraint_matrix, self._lower_bound, self._upper_bound
        var_lower, var_upper = self._variable_bounds()
        equal = lower == upper

        if equal.all() and np.isinf(var_lower).all() and np.isinf(var_upper).all():
            m = matrix.shape[0]
            kkt = np.block([[hessian, matrix.T], [matrix, np.zeros((m, m))]])
            rhs = np.concatenate([-gradient, lower])
            result, *_ = np.linalg.lstsq(kkt, rhs, rcond=None)
            residual = np.linalg.norm(kkt @ result - rhs)
            if not np.all(np.isfinite(result)) or residual > _KKT_TOLERANCE * (
                1.0 + np.linalg.norm(rhs)
            ):
                raise QPIKError("the problem is infeasible or unbounded")
            return result[:n]

        constraints = []
        if equal.any():
            a_eq, b_eq = matrix[equal], lower[equal]
            constraints.append(
                {"type": "eq", "fun": lambda x: a_eq @ x - b_eq, "jac": lambda x: a_eq}
            )
        lower_rows = ~equal & np.isfinite(lower)
        if lower_rows.any():
            a_lo, b_lo = matrix[lower_rows], lower[lower_rows]
            constraints.append(
                {"type": "ineq", "fun": lambda x: a_lo @ x - b_lo, "jac": lambda x: a_lo}
            )
        upper_rows = ~equal & np.isfinite(upper)
        if upper_rows.any():
            a_up, b_up = matrix[upper_rows], upper[upper_rows]
            constraints.append(
                {"type": "ineq", "fun": lambda x: b_up - a_up @ x, "jac": lambda x: -a_up}
            )
        bounds = [
            (None if np.isinf(lo) else float(lo), None if np.isinf(hi) else float(hi))
            for lo, hi in zip(var_lower, var_upper)
        ]
        start = np.clip(self._solution, var_lower, var_upper)
        result = minimize(
            lambda x: 0.5 * x @ hessian @ x + gradient @ x,
            start,
            jac=lambda x: hessian @ x + gradient,
            method="SLSQP",
            bounds=bounds,
            constraints=constraints,
        )
        if not result.success:
            raise QPIKError(f"unable to solve the problem: {result.message}")
        return np.asarray(result.x, dtype=float)

    def solve(self) -> np.ndarray:
        """Evaluate and solve the problem; return the desired joint velocities."""
        self.evaluate()
        self._solution = self._solve_qp()
        self._desired_joint_velocities = self._solution[_BASE_DOFS:].copy()
        return self._desired_joint_velocities.copy()

    def left_foot_error(self) -> np.ndarray:
        """Difference between the left foot task and the velocity the solution gives."""
        return self._lower_bound[0:6] - self._left_foot_jacobian @ self._solution

    def right_foot_error(self) -> np.ndarray:
        """Difference between the right foot task and the velocity the solution gives."""
        return self._lower_bound[6:12] - self._right_foot_jacobian @ self._solution