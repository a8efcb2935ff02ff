from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class WheelState:
    velocity_rad_s: float = 0.0
    rotation_rad: float = 0.0


@dataclass
class RobotConstants:
    wheel_base_m: float
    wheel_radius_m: float
    max_speed_mps: float
    max_accel_mps2: float
    slippage_amount: float


def default_constants() -> RobotConstants:
    return RobotConstants(
        wheel_base_m=0.3,
        wheel_radius_m=0.05,
        max_speed_mps=2.0,
        max_accel_mps2=1.0,
        slippage_amount=0.1,
    )


@dataclass
class WheelCommand:
    left_velocity_rad_s: float = 0.0
    right_velocity_rad_s: float = 0.0


@dataclass
class OdometryEstimate:
    x_m: float = 0.0
    y_m: float = 0.0
    theta_rad: float = 0.0
    linear_vel_mps: float = 0.0
    angular_vel_rad_s: float = 0.0
    left_wheel: WheelState = field(default_factory=WheelState)
    right_wheel: WheelState = field(default_factory=WheelState)


@dataclass
class GroundTruthState(OdometryEstimate):
    timestamp_s: float = 0.0


@dataclass
class SimulationSession:
    session_id: str
    running: bool = True


@dataclass
class StateSnapshot:
    ground_truth: GroundTruthState
    odometry: OdometryEstimate
    constants: RobotConstants
    timestamp_s: float


@dataclass
class SessionCreated:
    session_id: str


@dataclass
class SessionStatus:
    running: bool
    session_id: str = ""


@dataclass
class ErrorEvent:
    code: str
    message: str


@dataclass
class Message:
    type: str
    payload: Any = None
