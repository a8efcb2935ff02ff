import os
from pathlib import Path

import pytest
import yaml

from odomsim.engine.config import DEFAULT_CONFIG_DIR, ConfigManager, RunParams, validate_constants
from odomsim.engine.types import RobotConstants, default_constants


def write_config(d: Path, robot=None, run=None):
    robot = robot or {
        "wheel_base_m": 0.3,
        "wheel_radius_m": 0.05,
        "max_speed_mps": 2.0,
        "max_accel_mps2": 1.0,
        "slippage_amount": 0.1,
    }
    run = run or {"rate_hz": 60.0, "duration_s": 2.0, "seed": 4}
    (d / "robot.yaml").write_text(yaml.safe_dump(robot), encoding="utf-8")
    (d / "run.yaml").write_text(yaml.safe_dump(run), encoding="utf-8")


def test_packaged_defaults_load():
    constants, run = ConfigManager(DEFAULT_CONFIG_DIR).load_all()
    assert constants == default_constants()
    assert run.rate_hz == 120.0
    assert run.dt_s == pytest.approx(1.0 / 120.0)


def test_load_all(tmp_path):
    write_config(tmp_path)
    constants, run = ConfigManager(tmp_path).load_all()
    assert constants.wheel_base_m == 0.3
    assert run == RunParams(rate_hz=60.0, duration_s=2.0, seed=4)


def test_non_mapping_rejected(tmp_path):
    write_config(tmp_path)
    (tmp_path / "robot.yaml").write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="not a mapping"):
        ConfigManager(tmp_path).load_all()


def test_invalid_constants_rejected_on_load(tmp_path):
    write_config(
        tmp_path,
        robot={
            "wheel_base_m": 0.0,
            "wheel_radius_m": 0.05,
            "max_speed_mps": 2.0,
            "max_accel_mps2": 1.0,
            "slippage_amount": 0.1,
        },
    )
    with pytest.raises(ValueError):
        ConfigManager(tmp_path).load_all()


@pytest.mark.parametrize(
    "constants",
    [
        RobotConstants(-0.3, 0.05, 2.0, 1.0, 0.1),
        RobotConstants(0.3, 0.0, 2.0, 1.0, 0.1),
        RobotConstants(0.3, 0.05, -1.0, 1.0, 0.1),
        RobotConstants(0.3, 0.05, 2.0, -1.0, 0.1),
        RobotConstants(0.3, 0.05, 2.0, 1.0, 1.01),
        RobotConstants(float("nan"), 0.05, 2.0, 1.0, 0.1),
    ],
)
def test_validate_constants_rejects(constants):
    with pytest.raises(ValueError):
        validate_constants(constants)


def test_maybe_reload_detects_change(tmp_path):
    write_config(tmp_path)
    cfg = ConfigManager(tmp_path)
    cfg.load_all()

    changed, _ = cfg.maybe_reload(1.0)
    assert changed is False

    robot = yaml.safe_load((tmp_path / "robot.yaml").read_text(encoding="utf-8"))
    robot["slippage_amount"] = 0.6
    (tmp_path / "robot.yaml").write_text(yaml.safe_dump(robot), encoding="utf-8")
    mtime = os.path.getmtime(tmp_path / "robot.yaml") + 10.0
    os.utime(tmp_path / "robot.yaml", (mtime, mtime))

    # Too soon after the previous check.
    assert cfg.maybe_reload(1.1) == (False, None)

    changed, loaded = cfg.maybe_reload(2.0)
    assert changed is True
    assert loaded[0].slippage_amount == 0.6
