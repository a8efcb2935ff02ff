from __future__ import annotations

import copy
import math
import time
from random import Random
from typing import Callable

from .slip import SlipModel
from .types import (
    GroundTruthState,
    OdometryEstimate,
    RobotConstants,
    StateSnapshot,
    WheelCommand,
    WheelState,
    default_constants,
)

TWO_PI = 2.0 * math.pi
STRAIGHT_LINE_EPS = 1e-6


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def normalize_angle(theta: float) -> float:
    """Map an angle onto [0, 2*pi)."""
    theta = theta % TWO_PI
    # Tiny negative inputs round up to exactly 2*pi.
    if theta >= TWO_PI:
        theta = 0.0
    return theta


def wrap_angle(a: float) -> float:
    """Map an angle onto [-pi, pi)."""
    return (a + math.pi) % TWO_PI - math.pi


def approach(current: float, target: float, max_delta: float) -> float:
    diff = target - current
    if abs(diff) > max_delta:
        return current + math.copysign(max_delta, diff)
    return target


def body_velocity(
    left_rad_s: float,
    right_rad_s: float,
    constants: RobotConstants,
) -> tuple[float, float]:
    """Differential-drive forward kinematics.

    Positive angular velocity is a counter-clockwise (left) turn. Both outputs
    are clipped to +/- max_speed_mps.
    """
    r = constants.wheel_radius_m
    linear = (r / 2.0) * (left_rad_s + right_rad_s)
    angular = (r / constants.wheel_base_m) * (right_rad_s - left_rad_s)

    limit = constants.max_speed_mps
    return _clamp(linear, -limit, limit), _clamp(angular, -limit, limit)


def integrate_pose(
    x_m: float,
    y_m: float,
    theta_rad: float,
    linear_mps: float,
    angular_rad_s: float,
    dt_s: float,
) -> tuple[float, float, float]:
    # Exact arc for constant angular velocity, straight line near zero.
    if abs(angular_rad_s) < STRAIGHT_LINE_EPS:
        x_m += linear_mps * math.cos(theta_rad) * dt_s
        y_m += linear_mps * math.sin(theta_rad) * dt_s
    else:
        radius = linear_mps / angular_rad_s
        d_theta = angular_rad_s * dt_s
        x_m += radius * (math.sin(theta_rad + d_theta) - math.sin(theta_rad))
        y_m += radius * (-math.cos(theta_rad + d_theta) + math.cos(theta_rad))
        theta_rad += d_theta

    return x_m, y_m, normalize_angle(theta_rad)


def _advance_ground_truth(
    state: GroundTruthState,
    left_rad_s: float,
    right_rad_s: float,
    linear_mps: float,
    angular_rad_s: float,
    dt_s: float,
) -> GroundTruthState:
    x, y, theta = integrate_pose(state.x_m, state.y_m, state.theta_rad, linear_mps, angular_rad_s, dt_s)
    return GroundTruthState(
        x_m=x,
        y_m=y,
        theta_rad=theta,
        linear_vel_mps=linear_mps,
        angular_vel_rad_s=angular_rad_s,
        left_wheel=WheelState(left_rad_s, state.left_wheel.rotation_rad + left_rad_s * dt_s),
        right_wheel=WheelState(right_rad_s, state.right_wheel.rotation_rad + right_rad_s * dt_s),
        timestamp_s=state.timestamp_s,
    )


def _advance_odometry(
    state: OdometryEstimate,
    left_rad_s: float,
    right_rad_s: float,
    constants: RobotConstants,
    dt_s: float,
) -> OdometryEstimate:
    # Encoder-only estimate: recomputes body velocity from the wheel speeds
    # and never sees slip.
    linear, angular = body_velocity(left_rad_s, right_rad_s, constants)
    x, y, theta = integrate_pose(state.x_m, state.y_m, state.theta_rad, linear, angular, dt_s)
    return OdometryEstimate(
        x_m=x,
        y_m=y,
        theta_rad=theta,
        linear_vel_mps=linear,
        angular_vel_rad_s=angular,
        left_wheel=WheelState(left_rad_s, state.left_wheel.rotation_rad + left_rad_s * dt_s),
        right_wheel=WheelState(right_rad_s, state.right_wheel.rotation_rad + right_rad_s * dt_s),
    )


class KinematicEngine:
    """Single-robot differential-drive stepper.

    Holds the physical constants, the current wheel command, the ground-truth
    state (with slip) and the odometry estimate (without slip). Not
    thread-safe on its own; ``SessionCoordinator`` serializes access.
    """

    def __init__(
        self,
        constants: RobotConstants | None = None,
        rng: Random | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.constants = constants if constants is not None else default_constants()
        self.slip = SlipModel(rng if rng is not None else Random())
        self._clock = clock
        self.command = WheelCommand()
        self.ground_truth = GroundTruthState(timestamp_s=clock())
        self.odometry = OdometryEstimate()

    def set_wheel_command(self, cmd: WheelCommand) -> None:
        self.command = WheelCommand(cmd.left_velocity_rad_s, cmd.right_velocity_rad_s)

    def update_constants(self, constants: RobotConstants) -> None:
        # Positivity of wheel base / radius is checked by the caller.
        self.constants = copy.copy(constants)

    def reset(self) -> None:
        self.command = WheelCommand()
        self.ground_truth = GroundTruthState(timestamp_s=self._clock())
        self.odometry = OdometryEstimate()

    def step(self, dt_s: float) -> None:
        if dt_s <= 0:
            return

        c = self.constants
        gt = self.ground_truth
        prev_left = gt.left_wheel.velocity_rad_s
        prev_right = gt.right_wheel.velocity_rad_s

        # Acceleration limit, converted from linear to wheel angular.
        max_delta = c.max_accel_mps2 / c.wheel_radius_m * dt_s
        left = approach(prev_left, self.command.left_velocity_rad_s, max_delta)
        right = approach(prev_right, self.command.right_velocity_rad_s, max_delta)

        linear, angular = body_velocity(left, right, c)
        prev_linear, prev_angular = body_velocity(prev_left, prev_right, c)

        slipped_linear, slipped_angular = self.slip.apply(
            c.slippage_amount,
            linear,
            angular,
            (linear - prev_linear) / dt_s,
            (angular - prev_angular) / dt_s,
        )

        # Both branches read only the finalized wheel speeds above and their
        # own previous state.
        ground_truth = _advance_ground_truth(gt, left, right, slipped_linear, slipped_angular, dt_s)
        odometry = _advance_odometry(self.odometry, left, right, c, dt_s)

        ground_truth.timestamp_s = self._clock()
        self.ground_truth = ground_truth
        self.odometry = odometry

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            ground_truth=copy.deepcopy(self.ground_truth),
            odometry=copy.deepcopy(self.odometry),
            constants=copy.copy(self.constants),
            timestamp_s=self._clock(),
        )

    def get_state(self) -> tuple[GroundTruthState, OdometryEstimate]:
        return copy.deepcopy(self.ground_truth), copy.deepcopy(self.odometry)
