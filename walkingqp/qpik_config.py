"""Settings of the QP inverse-kinematics problem, read from a configuration mapping."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np

from walkingqp.config import ConfigError, get_number, get_vector

__all__ = [
    "RetargetingType",
    "HandRetargetingSettings",
    "JointRetargetingSettings",
    "QPIKSettings",
    "load_settings",
]

_BASE_DOFS = 6
_HAND_TASK_SIZE = 6
_COM_TASK_SIZE = 3


class RetargetingType(enum.Enum):
    """Which kind of retargeting, if any, enters the cost function."""

    HAND = "hand"
    JOINT = "joint"
    NONE = "none"


@dataclass(frozen=True, eq=False)
class HandRetargetingSettings:
    """Gains and time-varying weights of the hand retargeting task."""

    k_position: float
    k_attitude: float
    weight_walking: np.ndarray
    weight_stance: np.ndarray
    smoothing_time: float
    sample_time: float


@dataclass(frozen=True, eq=False)
class JointRetargetingSettings:
    """Gains and time-varying weights used when joints are retargeted."""

    gains: np.ndarray
    retargeting_weight_walking: np.ndarray
    retargeting_weight_stance: np.ndarray
    regularization_weight_walking: np.ndarray
    regularization_weight_stance: np.ndarray
    torso_weight_walking: float
    torso_weight_stance: float
    smoothing_time: float
    sample_time: float


@dataclass(frozen=True, eq=False)
class QPIKSettings:
    """Everything the QP inverse kinematics needs from its configuration."""

    actuated_dofs: int
    use_com_as_constraint: bool
    use_joint_limits_constraint: bool
    retargeting: RetargetingType
    joint_regularization_gains: np.ndarray
    joint_regularization: np.ndarray
    additional_rotation: np.ndarray
    k_foot_position: float
    k_foot_attitude: float
    k_neck: float
    k_com: float
    k_joint_limit_lower: float
    k_joint_limit_upper: float
    com_weight: np.ndarray | None = None
    neck_weight: float | None = None
    joint_regularization_weights: np.ndarray | None = None
    hand: HandRetargetingSettings | None = None
    joint: JointRetargetingSettings | None = None
    max_hand_linear_velocity: float = -1.0
    max_hand_angular_velocity: float = -1.0

    @property
    def number_of_variables(self) -> int:
        """Base velocity (6) plus one velocity per actuated joint."""
        return self.actuated_dofs + _BASE_DOFS

    @property
    def joint_regularization_gains_times_weights(self) -> np.ndarray | None:
        """Element-wise product of regularization gains and constant weights."""
        if self.joint_regularization_weights is None:
            return None
        return self.joint_regularization_weights * self.joint_regularization_gains


def _get_flag(config: Mapping[str, Any], key: str) -> bool:
    value = config.get(key, False)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    raise ConfigError(f"the value of {key!r} is not a boolean")


def _parse_rotation(config: Mapping[str, Any], key: str) -> np.ndarray:
    if key not in config:
        raise ConfigError(f"missing field {key!r}")
    value = config[key]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"unable to read the rotation {key!r}")
    if len(value) == 3 and all(isinstance(row, (list, tuple)) for row in value):
        rows = value
        if any(len(row) != 3 for row in rows):
            raise ConfigError(f"every row of {key!r} must have 3 elements")
        items = [item for row in rows for item in row]
    elif len(value) == 9:
        items = list(value)
    else:
        raise ConfigError(f"the rotation {key!r} must be 3x3")
    for item in items:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise ConfigError(f"the rotation {key!r} must hold numbers")
    return np.array(items, dtype=float).reshape(3, 3)


def _load_hand(config: Mapping[str, Any]) -> HandRetargetingSettings:
    return HandRetargetingSettings(
        k_position=get_number(config, "k_posHand"),
        k_attitude=get_number(config, "k_attHand"),
        weight_walking=get_vector(config, "hand_weight_walking", _HAND_TASK_SIZE),
        weight_stance=get_vector(config, "hand_weight_stance", _HAND_TASK_SIZE),
        smoothing_time=get_number(config, "smoothing_time"),
        sample_time=get_number(config, "sampling_time"),
    )


def _load_joint(config: Mapping[str, Any], dofs: int) -> JointRetargetingSettings:
    smoothing_time = get_number(config, "smoothing_time")
    sample_time = get_number(config, "sampling_time")
    return JointRetargetingSettings(
        gains=get_vector(config, "joint_retargeting_gains", dofs),
        retargeting_weight_walking=get_vector(config, "joint_retargeting_weight_walking", dofs),
        retargeting_weight_stance=get_vector(config, "joint_retargeting_weight_stance", dofs),
        regularization_weight_walking=get_vector(
            config, "joint_regularization_weight_walking", dofs
        ),
        regularization_weight_stance=get_vector(
            config, "joint_regularization_weight_stance", dofs
        ),
        torso_weight_walking=get_number(config, "torso_weight_walking"),
        torso_weight_stance=get_number(config, "torso_weight_stance"),
        smoothing_time=smoothing_time,
        sample_time=sample_time,
    )


def load_settings(config: Mapping[str, Any] | None, actuated_dofs: int) -> QPIKSettings:
    """Read and validate the QP-IK settings for ``actuated_dofs`` joints.

    Raises :class:`ConfigError` when the configuration is empty, when both
    hand and joint retargeting are enabled, or when a required entry is
    missing or malformed.
    """
    if isinstance(actuated_dofs, bool) or not isinstance(actuated_dofs, int) or actuated_dofs < 0:
        raise ValueError("actuated_dofs must be a non-negative integer")
    if not config:
        raise ConfigError("empty configuration for the QP-IK solver")

    use_com_as_constraint = _get_flag(config, "use_com_as_constraint")
    hand_enabled = _get_flag(config, "use_hand_retargeting")
    joint_enabled = _get_flag(config, "use_joint_retargeting")
    if hand_enabled and joint_enabled:
        raise ConfigError("hand and joint retargeting cannot both be enabled")

    if joint_enabled:
        retargeting = RetargetingType.JOINT
    elif hand_enabled:
        retargeting = RetargetingType.HAND
    else:
        retargeting = RetargetingType.NONE

    use_joint_limits_constraint = _get_flag(config, "use_joint_limits_constraint")

    com_weight = None
    if not use_com_as_constraint:
        com_weight = get_vector(config, "com_weight", _COM_TASK_SIZE)

    gains = get_vector(config, "joint_regularization_gains", actuated_dofs)

    neck_weight = None
    regularization_weights = None
    if retargeting is not RetargetingType.JOINT:
        neck_weight = get_number(config, "neck_weight")
        regularization_weights = get_vector(
            config, "joint_regularization_weights", actuated_dofs
        )

    k_foot_position = get_number(config, "k_posFoot")
    k_foot_attitude = get_number(config, "k_attFoot")
    k_neck = get_number(config, "k_neck")
    k_com = get_number(config, "k_posCom")

    regularization = np.deg2rad(get_vector(config, "joint_regularization", actuated_dofs))
    additional_rotation = _parse_rotation(config, "additional_rotation")

    k_lower = get_number(config, "k_joint_limit_lower_bound")
    k_upper = get_number(config, "k_joint_limit_upper_bound")

    hand = _load_hand(config) if retargeting is RetargetingType.HAND else None
    joint = _load_joint(config, actuated_dofs) if retargeting is RetargetingType.JOINT else None

    return QPIKSettings(
        actuated_dofs=actuated_dofs,
        use_com_as_constraint=use_com_as_constraint,
        use_joint_limits_constraint=use_joint_limits_constraint,
        retargeting=retargeting,
        joint_regularization_gains=gains,
        joint_regularization=regularization,
        additional_rotation=additional_rotation,
        k_foot_position=k_foot_position,
        k_foot_attitude=k_foot_attitude,
        k_neck=k_neck,
        k_com=k_com,
        k_joint_limit_lower=k_lower,
        k_joint_limit_upper=k_upper,
        com_weight=com_weight,
        neck_weight=neck_weight,
        joint_regularization_weights=regularization_weights,
        hand=hand,
        joint=joint,
    )