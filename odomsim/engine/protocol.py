"""Transport-independent command and event layer.

Inbound messages are JSON objects ``{"type": ..., "payload": ...}``. They
are decoded and validated here before anything reaches the coordinator, so
the engine only ever sees well-typed input with positive wheel geometry.
Outbound messages are encoded with the camelCase field names the browser
client expects.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from .config import validate_constants
from .coordinator import MSG_ERROR, SessionCoordinator
from .types import (
    ErrorEvent,
    GroundTruthState,
    Message,
    OdometryEstimate,
    RobotConstants,
    SessionCreated,
    SessionStatus,
    StateSnapshot,
    WheelCommand,
    WheelState,
)

logger = logging.getLogger(__name__)

MSG_WHEEL_COMMAND = "wheelCommand"
MSG_UPDATE_CONSTANTS = "updateConstants"
MSG_START_SIMULATION = "startSimulation"
MSG_STOP_SIMULATION = "stopSimulation"
MSG_RESET_SIMULATION = "resetSimulation"

ERR_INVALID_MESSAGE = "INVALID_MESSAGE"
ERR_UNKNOWN_TYPE = "UNKNOWN_TYPE"
ERR_INVALID_PAYLOAD = "INVALID_PAYLOAD"
ERR_INVALID_CONSTANTS = "INVALID_CONSTANTS"

SERVICE_NAME = "robot-simulation-engine"

_CONSTANT_FIELDS = {
    "wheelBase": "wheel_base_m",
    "wheelRadius": "wheel_radius_m",
    "maxSpeed": "max_speed_mps",
    "maxAcceleration": "max_accel_mps2",
    "slippageAmount": "slippage_amount",
}


class CommandError(ValueError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_event(self) -> ErrorEvent:
        return ErrorEvent(code=self.code, message=self.message)


# ----------------------------------------------------------------------
# Inbound
# ----------------------------------------------------------------------


def decode_message(raw: str | bytes) -> tuple[str, Any]:
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise CommandError(ERR_INVALID_MESSAGE, "Failed to parse message") from exc

    if not isinstance(msg, dict) or not isinstance(msg.get("type"), str):
        raise CommandError(ERR_INVALID_MESSAGE, "Message must be an object with a string 'type'")
    return msg["type"], msg.get("payload")


def _number(payload: dict[str, Any], key: str) -> float:
    if key not in payload:
        raise CommandError(ERR_INVALID_PAYLOAD, f"Missing field: {key}")
    value = payload[key]
    # bool is an int subclass; a JSON true is not a velocity.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CommandError(ERR_INVALID_PAYLOAD, f"Field {key} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise CommandError(ERR_INVALID_PAYLOAD, f"Field {key} must be finite")
    return value


def _mapping(payload: Any, what: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise CommandError(ERR_INVALID_PAYLOAD, f"{what} payload must be an object")
    return payload


def parse_wheel_command(payload: Any) -> WheelCommand:
    p = _mapping(payload, "wheelCommand")
    return WheelCommand(
        left_velocity_rad_s=_number(p, "leftVelocity"),
        right_velocity_rad_s=_number(p, "rightVelocity"),
    )


def parse_constants(payload: Any) -> RobotConstants:
    p = _mapping(payload, "updateConstants")
    if "maxAcceleration" not in p and "maxAccel" in p:
        # Older clients send the short key.
        p = {**p, "maxAcceleration": p["maxAccel"]}
    constants = RobotConstants(**{attr: _number(p, key) for key, attr in _CONSTANT_FIELDS.items()})
    try:
        return validate_constants(constants)
    except ValueError as exc:
        raise CommandError(ERR_INVALID_CONSTANTS, f"Invalid constants: {exc}") from exc


def dispatch(coordinator: SessionCoordinator, raw: str | bytes) -> ErrorEvent | None:
    """Decode one inbound message and apply it.

    Returns an ErrorEvent for the sender when the message is rejected, None
    otherwise.
    """
    try:
        msg_type, payload = decode_message(raw)

        if msg_type == MSG_WHEEL_COMMAND:
            coordinator.set_wheel_command(parse_wheel_command(payload))
        elif msg_type == MSG_UPDATE_CONSTANTS:
            coordinator.update_constants(parse_constants(payload))
        elif msg_type == MSG_START_SIMULATION:
            coordinator.start()
        elif msg_type == MSG_STOP_SIMULATION:
            coordinator.stop()
        elif msg_type == MSG_RESET_SIMULATION:
            coordinator.reset()
        else:
            raise CommandError(ERR_UNKNOWN_TYPE, f"Unknown message type: {msg_type}")
    except CommandError as exc:
        logger.warning("Rejected message (%s): %s", exc.code, exc.message)
        return exc.to_event()
    return None


def wheel_command_message(left_rad_s: float, right_rad_s: float) -> str:
    return json.dumps(
        {
            "type": MSG_WHEEL_COMMAND,
            "payload": {"leftVelocity": left_rad_s, "rightVelocity": right_rad_s},
        }
    )


def constants_message(constants: RobotConstants) -> str:
    return json.dumps({"type": MSG_UPDATE_CONSTANTS, "payload": constants_to_wire(constants)})


# ----------------------------------------------------------------------
# Outbound
# ----------------------------------------------------------------------


def _wheel_to_wire(w: WheelState) -> dict[str, float]:
    return {"velocity": w.velocity_rad_s, "rotation": w.rotation_rad}


def _pose_to_wire(s: OdometryEstimate) -> dict[str, Any]:
    return {
        "x": s.x_m,
        "y": s.y_m,
        "theta": s.theta_rad,
        "linearVel": s.linear_vel_mps,
        "angularVel": s.angular_vel_rad_s,
        "leftWheel": _wheel_to_wire(s.left_wheel),
        "rightWheel": _wheel_to_wire(s.right_wheel),
    }


def _iso_utc(timestamp_s: float) -> str:
    return datetime.fromtimestamp(timestamp_s, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def ground_truth_to_wire(s: GroundTruthState) -> dict[str, Any]:
    out = _pose_to_wire(s)
    out["timestamp"] = _iso_utc(s.timestamp_s)
    return out


def constants_to_wire(c: RobotConstants) -> dict[str, float]:
    return {key: getattr(c, attr) for key, attr in _CONSTANT_FIELDS.items()}


def snapshot_to_wire(snap: StateSnapshot) -> dict[str, Any]:
    return {
        "groundTruth": ground_truth_to_wire(snap.ground_truth),
        "odometry": _pose_to_wire(snap.odometry),
        "constants": constants_to_wire(snap.constants),
        "timestamp": int(snap.timestamp_s * 1000),
    }


def to_wire(message: Message) -> dict[str, Any]:
    payload = message.payload
    if isinstance(payload, StateSnapshot):
        body: Any = snapshot_to_wire(payload)
    elif isinstance(payload, SessionStatus):
        body = {"running": payload.running, "sessionId": payload.session_id}
    elif isinstance(payload, SessionCreated):
        body = {"sessionId": payload.session_id}
    elif isinstance(payload, ErrorEvent):
        body = asdict(payload)
    elif payload is None:
        return {"type": message.type}
    else:
        raise TypeError(f"Cannot encode payload of type {type(payload).__name__}")
    return {"type": message.type, "payload": body}


def encode_message(message: Message) -> str:
    return json.dumps(to_wire(message))


def error_message(event: ErrorEvent) -> Message:
    return Message(MSG_ERROR, event)


def health(coordinator: SessionCoordinator) -> dict[str, Any]:
    return {"status": "ok", "service": SERVICE_NAME, "running": coordinator.running}
