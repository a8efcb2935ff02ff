import json
from random import Random

import pytest

from odomsim.engine import protocol
from odomsim.engine.coordinator import MSG_SIMULATION_STATUS, MSG_STATE_UPDATE, SessionCoordinator
from odomsim.engine.kinematics import KinematicEngine
from odomsim.engine.types import (
    ErrorEvent,
    Message,
    RobotConstants,
    SessionCreated,
    SessionStatus,
    WheelCommand,
    default_constants,
)

VALID_CONSTANTS = {
    "wheelBase": 0.4,
    "wheelRadius": 0.07,
    "maxSpeed": 1.5,
    "maxAcceleration": 2.0,
    "slippageAmount": 0.25,
}


@pytest.fixture
def coordinator():
    coord = SessionCoordinator(KinematicEngine(rng=Random(0), clock=lambda: 1700000000.25))
    yield coord
    coord.stop()


def msg(type_, payload=None):
    body = {"type": type_}
    if payload is not None:
        body["payload"] = payload
    return json.dumps(body)


def test_wheel_command_applied(coordinator):
    err = protocol.dispatch(coordinator, protocol.wheel_command_message(1.5, -2.0))
    assert err is None
    assert coordinator.engine.command == WheelCommand(1.5, -2.0)


def test_update_constants_applied(coordinator):
    err = protocol.dispatch(coordinator, msg("updateConstants", VALID_CONSTANTS))
    assert err is None
    assert coordinator.engine.constants == RobotConstants(0.4, 0.07, 1.5, 2.0, 0.25)


def test_update_constants_accepts_short_accel_key(coordinator):
    payload = dict(VALID_CONSTANTS)
    payload["maxAccel"] = payload.pop("maxAcceleration")
    assert protocol.dispatch(coordinator, msg("updateConstants", payload)) is None
    assert coordinator.engine.constants.max_accel_mps2 == 2.0


@pytest.mark.parametrize("field", ["wheelBase", "wheelRadius"])
@pytest.mark.parametrize("value", [0.0, -0.1])
def test_non_positive_geometry_rejected(coordinator, field, value):
    payload = dict(VALID_CONSTANTS, **{field: value})
    err = protocol.dispatch(coordinator, msg("updateConstants", payload))
    assert err.code == protocol.ERR_INVALID_CONSTANTS
    assert coordinator.engine.constants == default_constants()


def test_slippage_out_of_range_rejected(coordinator):
    payload = dict(VALID_CONSTANTS, slippageAmount=1.5)
    err = protocol.dispatch(coordinator, msg("updateConstants", payload))
    assert err.code == protocol.ERR_INVALID_CONSTANTS


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"leftVelocity": 1.0},
        {"leftVelocity": "fast", "rightVelocity": 1.0},
        {"leftVelocity": True, "rightVelocity": 1.0},
    ],
)
def test_bad_wheel_command_payload(coordinator, payload):
    err = protocol.dispatch(coordinator, msg("wheelCommand", payload))
    assert err.code == protocol.ERR_INVALID_PAYLOAD
    assert coordinator.engine.command == WheelCommand()


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '{"payload": {}}', '{"type": 3}', b"\xff"])
def test_malformed_envelope(coordinator, raw):
    err = protocol.dispatch(coordinator, raw)
    assert err.code == protocol.ERR_INVALID_MESSAGE


def test_unknown_type(coordinator):
    err = protocol.dispatch(coordinator, msg("teleport"))
    assert err == ErrorEvent(protocol.ERR_UNKNOWN_TYPE, "Unknown message type: teleport")


def test_lifecycle_messages(coordinator):
    assert protocol.dispatch(coordinator, msg("startSimulation")) is None
    assert coordinator.running
    assert protocol.health(coordinator)["running"] is True
    assert protocol.dispatch(coordinator, msg("stopSimulation")) is None
    assert not coordinator.running
    assert protocol.dispatch(coordinator, msg("resetSimulation")) is None
    assert coordinator.session is None


def test_snapshot_wire_format(coordinator):
    wire = protocol.to_wire(Message(MSG_STATE_UPDATE, coordinator.snapshot()))
    assert wire["type"] == "stateUpdate"
    body = wire["payload"]
    assert set(body) == {"groundTruth", "odometry", "constants", "timestamp"}
    assert set(body["groundTruth"]) == {
        "x", "y", "theta", "linearVel", "angularVel", "leftWheel", "rightWheel", "timestamp",
    }
    assert "timestamp" not in body["odometry"]
    assert body["groundTruth"]["leftWheel"] == {"velocity": 0.0, "rotation": 0.0}
    assert body["groundTruth"]["timestamp"] == "2023-11-14T22:13:20.250000Z"
    assert body["constants"] == {
        "wheelBase": 0.3,
        "wheelRadius": 0.05,
        "maxSpeed": 2.0,
        "maxAcceleration": 1.0,
        "slippageAmount": 0.1,
    }
    assert body["timestamp"] == 1700000000250
    json.loads(protocol.encode_message(Message(MSG_STATE_UPDATE, coordinator.snapshot())))


def test_event_wire_formats():
    assert protocol.to_wire(Message(MSG_SIMULATION_STATUS, SessionStatus(True, "abc"))) == {
        "type": "simulationStatus",
        "payload": {"running": True, "sessionId": "abc"},
    }
    assert protocol.to_wire(Message("sessionCreated", SessionCreated("abc")))["payload"] == {"sessionId": "abc"}
    err = protocol.to_wire(protocol.error_message(ErrorEvent("UNKNOWN_TYPE", "nope")))
    assert err == {"type": "error", "payload": {"code": "UNKNOWN_TYPE", "message": "nope"}}


def test_constants_message_round_trips_through_dispatch(coordinator):
    c = RobotConstants(0.5, 0.1, 3.0, 4.0, 0.0)
    assert protocol.dispatch(coordinator, protocol.constants_message(c)) is None
    assert coordinator.engine.constants == c


def test_health_idle(coordinator):
    assert protocol.health(coordinator) == {
        "status": "ok",
        "service": "robot-simulation-engine",
        "running": False,
    }
