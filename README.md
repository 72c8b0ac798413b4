# walkingqp

Velocity-level inverse kinematics for a walking biped, posed as a quadratic
program. You give it the robot's measured state and the task Jacobians. The
state covers the joint positions, the feet, the hands, the neck orientation
and the centre of mass. It returns joint velocities that:

- track the desired foot motion, as equality constraints;
- track the centre of mass, either as a cost term or as a constraint;
- keep the neck at a desired orientation and the joints near a regularisation
  posture, both as cost terms;
- optionally follow hand or joint retargeting references.

The decision variables are the base twist (6 values) followed by one velocity
per actuated joint.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

### `walkingqp.config`

Typed access to values in plain mappings such as `dict`:

- `get_string`, `get_number` (floats only; an `int` is rejected) and
  `get_integer`;
- `get_vector(config, key, size)` and `list_to_vector(value, size)`, which
  return a float `numpy` array of exactly `size` numbers;
- `get_bool_vector(config, key, size)`, `list_to_strings` and `list_to_bools`;
- `add_string_list(prop, key, values)`, which refuses a key that is already
  present;
- `merge_vectors(*args)`, which concatenates vectors and scalars into one flat
  array.

Any missing or malformed entry raises `ConfigError`, a subclass of
`ValueError`.

### `walkingqp.smoother`

`MinJerkSmoother(initial, sample_time, smoothing_time)` moves a vector towards
a target along a minimum-jerk profile. It has two methods:

- `step(target)` advances one sample and returns the new position;
- `reset(value)` places the smoother at rest at `value`.

The solver uses it to blend cost weights when the robot switches between
stance and walking.

### `walkingqp.geometry`

- `Transform(rotation, position)` is a frozen rigid transform. It provides
  `identity()`, `from_matrix()`, `as_matrix()` and `inverse()`. With the `@`
  operator it composes with another transform or maps a point.
- `skew` and `unskew` convert between a 3-vector and its skew-symmetric matrix.
- `attitude_error(R, Rd)` gives the vector of the skew-symmetric part of
  `R @ Rd.T`.
- `rotation_z(angle)` gives the rotation about the z axis.

### `walkingqp.qpik_config`

`load_settings(config, actuated_dofs)` validates a configuration mapping and
returns a frozen `QPIKSettings`. The retargeting mode is a `RetargetingType`
(`HAND`, `JOINT` or `NONE`). Its parameters are kept in
`HandRetargetingSettings` or `JointRetargetingSettings`.

Flags, all off by default:

- `use_com_as_constraint`
- `use_hand_retargeting`
- `use_joint_retargeting`
- `use_joint_limits_constraint`

Enabling both retargeting flags raises `ConfigError`.

Required entries. Scalars must be floats, for example `1.0` and not `1`.

- `k_posFoot`, `k_attFoot`, `k_neck`, `k_posCom`;
- `k_joint_limit_lower_bound`, `k_joint_limit_upper_bound`;
- `joint_regularization_gains`, one value per joint;
- `joint_regularization`, one value per joint, in degrees;
- `additional_rotation`, a 3x3 nested list or 9 numbers;
- `com_weight` (3 values), unless the CoM is a constraint;
- `neck_weight` and `joint_regularization_weights`, unless joint retargeting
  is enabled.

Extra entries for hand retargeting:

- `k_posHand`, `k_attHand`;
- `hand_weight_walking` and `hand_weight_stance`, 6 values each;
- `smoothing_time`, `sampling_time`.

Extra entries for joint retargeting:

- `joint_retargeting_gains`;
- `joint_retargeting_weight_walking`, `joint_retargeting_weight_stance`;
- `joint_regularization_weight_walking`, `joint_regularization_weight_stance`;
- `torso_weight_walking`, `torso_weight_stance`;
- `smoothing_time`, `sampling_time`.

### `walkingqp.qpik`

`WalkingQPIK(settings, max_joint_velocity, max_joint_position,
min_joint_position)` holds the problem state and provides setters for the
robot state, the Jacobians and the desired values.

Some inputs are ignored unless the matching retargeting mode is enabled:

- the hand Jacobians and desired hand poses need hand retargeting;
- the retargeted joint positions need joint retargeting.

`set_neck_jacobian` takes a 6-row Jacobian and keeps only its angular rows.
`set_phase(is_stance_phase)` advances the weight smoothers by one step.

`evaluate()` builds the problem. The results can be read from `hessian`,
`gradient`, `constraint_matrix`, `lower_bound` and `upper_bound`.

`solve()` evaluates the problem, solves it and returns the joint velocities.
After a solve, these are available:

- `solution`, the base twist followed by the joint velocities;
- `desired_joint_velocities`;
- `left_foot_error()` and `right_foot_error()`.

How the problem is solved:

- When every constraint is an equality and no variable is bounded, `solve()`
  solves the KKT system with `numpy`.
- Otherwise it uses `scipy.optimize.minimize` with SLSQP.

The two kinds of error are kept apart:

- an input of the wrong size raises `ValueError`;
- an unsolvable problem raises `QPIKError`.

### `walkingqp.solvers`

There are two concrete solvers. They differ in how the joint limits enter the
problem when `use_joint_limits_constraint` is set. In both, the admissible
joint velocity shrinks through a hyperbolic tangent as a joint nears a
position limit.

- `ConstrainedLimitsQPIK` adds one constraint row per joint. The row bounds
  are `k * tanh(distance to limit) * max_velocity`. Its `is_initialized`
  property becomes true after a successful solve.
- `BoundedLimitsQPIK` bounds the joint velocity variables directly. The bounds
  are `tanh(k * distance to limit) * max_velocity`, and they can be read from
  `variable_lower_bound` and `variable_upper_bound`. Its `is_first_time`
  property stays true until a successful solve.

`make_solver(config, actuated_dofs, max_joint_velocity, max_joint_position,
min_joint_position, limits_as_constraints)` loads the settings and builds one
of the two.

## Example

```python
import numpy as np
from walkingqp.geometry import Transform
from walkingqp.solvers import make_solver

dofs = 23
solver = make_solver(
    config,                      # mapping with the entries listed above
    dofs,
    np.full(dofs, 1.0),          # max joint velocity [rad/s]
    np.full(dofs, 1.5),          # upper joint position limits [rad]
    np.full(dofs, -1.5),         # lower joint position limits [rad]
    limits_as_constraints=True,
)

solver.set_robot_state(q, left_foot, right_foot, left_hand, right_hand,
                       neck_rotation, com_position)
solver.set_left_foot_jacobian(J_lf)      # 6 x (dofs + 6)
solver.set_right_foot_jacobian(J_rf)     # 6 x (dofs + 6)
solver.set_neck_jacobian(J_neck)         # 6 x (dofs + 6)
solver.set_com_jacobian(J_com)           # 3 x (dofs + 6)
solver.set_desired_feet_transformation(desired_left, desired_right)
solver.set_desired_feet_twist(np.zeros(6), np.zeros(6))
solver.set_desired_com_position(com_des)
solver.set_desired_com_velocity(np.zeros(3))
solver.set_desired_neck_orientation(np.eye(3))

joint_velocities = solver.solve()
```

## What this package does not do

The package does not do any of the following:

- compute the robot's kinematics: it takes Jacobians, poses and the CoM
  position as inputs;
- plan footstep or CoM trajectories;
- integrate the joint velocities it returns;
- talk to a robot;
- provide a command-line program.