"""Rigid-body rotations and transforms used by the kinematics tasks."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import ArrayLike

__all__ = ["Transform", "skew", "unskew", "attitude_error", "rotation_z"]


def _as_rotation(value: ArrayLike) -> np.ndarray:
    matrix = np.asarray(value, dtype=float)
    if matrix.shape != (3, 3):
        raise ValueError(f"a rotation must be a 3x3 matrix, got shape {matrix.shape}")
    return matrix.copy()


def _as_vector3(value: ArrayLike) -> np.ndarray:
    vector = np.asarray(value, dtype=float).ravel()
    if vector.shape != (3,):
        raise ValueError(f"expected a vector of 3 elements, got shape {vector.shape}")
    return vector.copy()


@dataclass(frozen=True)
class Transform:
    """A homogeneous transform made of a rotation and a position."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        object.__setattr__(self, "rotation", _as_rotation(self.rotation))
        object.__setattr__(self, "position", _as_vector3(self.position))

    @classmethod
    def identity(cls) -> Transform:
        return cls()

    @classmethod
    def from_matrix(cls, matrix: ArrayLike) -> Transform:
        """Build a transform from a 4x4 homogeneous matrix."""
        homogeneous = np.asarray(matrix, dtype=float)
        if homogeneous.shape != (4, 4):
            raise ValueError(f"expected a 4x4 matrix, got shape {homogeneous.shape}")
        return cls(homogeneous[:3, :3], homogeneous[:3, 3])

    def as_matrix(self) -> np.ndarray:
        """Return the 4x4 homogeneous matrix."""
        homogeneous = np.eye(4)
        homogeneous[:3, :3] = self.rotation
        homogeneous[:3, 3] = self.position
        return homogeneous

    def inverse(self) -> Transform:
        """Return the transform that undoes this one."""
        rotation_t = self.rotation.T
        return Transform(rotation_t, -rotation_t @ self.position)

    def __matmul__(self, other: Transform | ArrayLike) -> Transform | np.ndarray:
        if isinstance(other, Transform):
            return Transform(
                self.rotation @ other.rotation,
                self.rotation @ other.position + self.position,
            )
        point = _as_vector3(other)
        return self.rotation @ point + self.position


def skew(vector: ArrayLike) -> np.ndarray:
    """Return the skew-symmetric matrix whose product with w is vector x w."""
    x, y, z = _as_vector3(vector)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def unskew(matrix: ArrayLike) -> np.ndarray:
    """Return the vector held in the off-diagonal entries of a skew matrix."""
    m = np.asarray(matrix, dtype=float)
    if m.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {m.shape}")
    return np.array([m[2, 1], m[0, 2], m[1, 0]])


def attitude_error(rotation: ArrayLike, desired_rotation: ArrayLike) -> np.ndarray:
    """Orientation error vector between a rotation and its desired value.

    It is the vector of the skew-symmetric part of ``R @ Rd.T``.
    """
    relative = _as_rotation(rotation) @ _as_rotation(desired_rotation).T
    return unskew(0.5 * (relative - relative.T))


def rotation_z(angle: float) -> np.ndarray:
    """Return the rotation of ``angle`` radians about the z axis."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])