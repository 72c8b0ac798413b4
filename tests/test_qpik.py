import numpy as np
import pytest

from walkingqp.geometry import Transform
from walkingqp.qpik import QPIKError, WalkingQPIK
from walkingqp.qpik_config import RetargetingType, load_settings

DOFS = 2
N = DOFS + 6


def base_config(**overrides):
    config = {
        "com_weight": [1.0, 1.0, 1.0],
        "joint_regularization_gains": [1.0, 1.0],
        "neck_weight": 1.0,
        "joint_regularization_weights": [0.5, 0.5],
        "k_posFoot": 1.0,
        "k_attFoot": 1.0,
        "k_neck": 1.0,
        "k_posCom": 1.0,
        "joint_regularization": [0.0, 0.0],
        "additional_rotation": [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
        "k_joint_limit_lower_bound": 1.0,
        "k_joint_limit_upper_bound": 1.0,
    }
    config.update(overrides)
    return config


def joint_config():
    return base_config(
        use_joint_retargeting=True,
        smoothing_time=1.0,
        sampling_time=0.1,
        joint_retargeting_gains=[1.0, 1.0],
        joint_retargeting_weight_walking=[4.0, 4.0],
        joint_retargeting_weight_stance=[1.0, 1.0],
        joint_regularization_weight_walking=[2.0, 2.0],
        joint_regularization_weight_stance=[0.5, 0.5],
        torso_weight_walking=1.0,
        torso_weight_stance=1.0,
    )


def hand_config():
    return base_config(
        use_hand_retargeting=True,
        k_posHand=1.0,
        k_attHand=1.0,
        hand_weight_walking=[1.0] * 6,
        hand_weight_stance=[1.0] * 6,
        smoothing_time=1.0,
        sampling_time=0.1,
    )


def make(config=None):
    settings = load_settings(config or base_config(), DOFS)
    return WalkingQPIK(settings, [1.0, 1.0], [1.0, 1.0], [-1.0, -1.0])


def base_jacobian():
    jacobian = np.zeros((6, N))
    jacobian[:, :6] = np.eye(6)
    return jacobian


def test_joint_limits_of_wrong_size_raise():
    settings = load_settings(base_config(), DOFS)
    with pytest.raises(ValueError):
        WalkingQPIK(settings, [1.0, 1.0, 1.0], [1.0, 1.0], [-1.0, -1.0])


def test_dimensions():
    solver = make()
    assert solver.number_of_variables == N
    assert solver.number_of_constraints == 12
    assert make(base_config(use_com_as_constraint=True)).number_of_constraints == 15


def test_jacobian_shape_is_checked():
    solver = make()
    with pytest.raises(ValueError):
        solver.set_left_foot_jacobian(np.zeros((5, N)))
    with pytest.raises(ValueError):
        solver.set_com_jacobian(np.zeros((3, N + 1)))
    with pytest.raises(ValueError):
        solver.set_neck_jacobian(np.zeros((3, N)))


def test_hand_jacobian_is_checked_only_with_hand_retargeting():
    solver = make(hand_config())
    assert solver.retargeting is RetargetingType.HAND
    with pytest.raises(ValueError):
        solver.set_left_hand_jacobian(np.zeros((5, N)))

    plain = make()
    plain.set_left_hand_jacobian(np.ones((5, N)))
    plain.evaluate()
    assert np.allclose(plain.hessian[:6, :6], 0.0)


def test_vector_inputs_of_wrong_size_raise():
    solver = make()
    with pytest.raises(ValueError):
        solver.set_desired_joint_position([0.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        solver.set_desired_feet_twist(np.zeros(5), np.zeros(6))
    with pytest.raises(ValueError):
        solver.set_robot_state(
            [0.0], Transform(), Transform(), Transform(), Transform(), np.eye(3), np.zeros(3)
        )
    joint = make(joint_config())
    with pytest.raises(ValueError):
        joint.set_desired_retargeting_joint([0.0])


def test_neck_jacobian_keeps_only_angular_rows():
    solver = make()
    neck = np.zeros((6, N))
    neck[:3, :] = 100.0
    solver.set_neck_jacobian(neck)
    solver.evaluate()
    hessian = solver.hessian
    assert np.allclose(hessian[:6, :6], 0.0)
    assert np.allclose(hessian[6:, 6:], np.diag([0.5, 0.5]))


def test_hessian_is_symmetric_and_positive_semidefinite():
    rng = np.random.default_rng(0)
    solver = make()
    solver.set_neck_jacobian(rng.normal(size=(6, N)))
    solver.set_com_jacobian(rng.normal(size=(3, N)))
    solver.evaluate()
    hessian = solver.hessian
    assert np.allclose(hessian, hessian.T)
    assert np.linalg.eigvalsh(hessian).min() > -1e-9


def test_foot_bound_ignores_correction_when_planar_twist_is_zero():
    solver = make()
    twist = np.array([0.0, 0.0, 0.3, 0.0, 0.0, 0.0])
    solver.set_desired_feet_twist(twist, twist)
    solver.set_robot_state(
        [0.0, 0.0],
        Transform(position=[0.2, 0.0, 0.0]),
        Transform(),
        Transform(),
        Transform(),
        np.eye(3),
        np.zeros(3),
    )
    solver.evaluate()
    assert np.allclose(solver.lower_bound[:6], twist)
    assert np.allclose(solver.upper_bound, solver.lower_bound)


def test_foot_bound_subtracts_position_correction():
    solver = make()
    twist = np.array([0.1, 0.0, 0.0, 0.0, 0.0, 0.0])
    solver.set_desired_feet_twist(twist, twist)
    solver.set_robot_state(
        [0.0, 0.0],
        Transform(),
        Transform(position=[0.0, 0.2, 0.0]),
        Transform(),
        Transform(),
        np.eye(3),
        np.zeros(3),
    )
    solver.evaluate()
    assert np.allclose(solver.lower_bound[:6], twist)
    assert np.allclose(solver.lower_bound[6:12], twist - np.array([0.0, 0.2, 0.0, 0.0, 0.0, 0.0]))


def test_com_as_constraint_rows_and_bounds():
    solver = make(base_config(use_com_as_constraint=True))
    com_jacobian = np.zeros((3, N))
    com_jacobian[:, :3] = np.eye(3)
    solver.set_com_jacobian(com_jacobian)
    solver.set_desired_com_velocity([0.1, 0.0, 0.0])
    solver.set_desired_com_position([0.0, 0.0, 0.5])
    solver.set_robot_state(
        [0.0, 0.0], Transform(), Transform(), Transform(), Transform(), np.eye(3), [0.0, 0.0, 0.5]
    )
    solver.evaluate()
    assert np.allclose(solver.constraint_matrix[12:15], com_jacobian)
    assert np.allclose(solver.lower_bound[12:15], [0.1, 0.0, 0.0])


def test_solve_satisfies_feet_tasks_and_regularizes_joints():
    solver = make()
    solver.set_left_foot_jacobian(base_jacobian())
    solver.set_right_foot_jacobian(base_jacobian())
    twist = np.array([0.1, 0.05, 0.0, 0.0, 0.0, 0.02])
    solver.set_desired_feet_twist(twist, twist)
    q = np.array([0.2, -0.4])
    solver.set_robot_state(q, Transform(), Transform(), Transform(), Transform(), np.eye(3), np.zeros(3))
    velocities = solver.solve()
    assert np.allclose(velocities, -q)
    assert np.allclose(solver.desired_joint_velocities, velocities)
    assert np.allclose(solver.left_foot_error(), 0.0, atol=1e-8)
    assert np.allclose(solver.right_foot_error(), 0.0, atol=1e-8)
    assert np.allclose(solver.solution[:6], twist)


def test_inconsistent_feet_tasks_raise():
    solver = make()
    solver.set_left_foot_jacobian(base_jacobian())
    solver.set_right_foot_jacobian(base_jacobian())
    solver.set_desired_feet_twist([0.1, 0.1, 0.0, 0.0, 0.0, 0.0], [0.3, 0.1, 0.0, 0.0, 0.0, 0.0])
    with pytest.raises(QPIKError):
        solver.solve()


def test_joint_retargeting_weights_move_towards_walking():
    solver = make(joint_config())
    solver.evaluate()
    stance = np.diag(solver.hessian)[6:]
    assert np.allclose(stance, [1.5, 1.5])
    for _ in range(3):
        solver.set_phase(False)
    solver.evaluate()
    moving = np.diag(solver.hessian)[6:]
    assert np.all(moving > 1.5)
    assert np.all(moving < 6.0)


def test_hand_retargeting_gradient_pulls_hand_to_target():
    solver = make(hand_config())
    solver.set_left_hand_jacobian(base_jacobian())
    solver.set_right_hand_jacobian(np.zeros((6, N)))
    solver.set_desired_hands_transformation(Transform(), Transform())
    solver.set_robot_state(
        [0.0, 0.0],
        Transform(),
        Transform(),
        Transform(position=[0.3, 0.0, 0.0]),
        Transform(),
        np.eye(3),
        np.zeros(3),
    )
    solver.evaluate()
    assert np.allclose(solver.gradient[:3], [0.3, 0.0, 0.0])
    assert np.allclose(solver.gradient[3:], 0.0)


def test_matching_neck_orientation_gives_no_neck_gradient():
    solver = make()
    neck = np.zeros((6, N))
    neck[3:, 3:6] = np.eye(3)
    solver.set_neck_jacobian(neck)
    rotation = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    solver.set_desired_neck_orientation(rotation)
    solver.set_robot_state(
        [0.0, 0.0], Transform(), Transform(), Transform(), Transform(), rotation, np.zeros(3)
    )
    solver.evaluate()
    assert np.allclose(solver.gradient, 0.0)