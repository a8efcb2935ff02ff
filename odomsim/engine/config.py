from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .types import RobotConstants

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@dataclass
class RunParams:
    rate_hz: float = 120.0
    duration_s: float = 10.0
    seed: int | None = None
    observer_queue_size: int = 16
    reload_period_s: float = 0.25
    realtime: bool = True

    @property
    def dt_s(self) -> float:
        return 1.0 / self.rate_hz


def validate_constants(c: RobotConstants) -> RobotConstants:
    """Reject constants the kinematic equations cannot use.

    Wheel base and wheel radius divide in the forward kinematics and the
    acceleration limit, so they must be strictly positive.
    """
    values = {
        "wheel_base_m": c.wheel_base_m,
        "wheel_radius_m": c.wheel_radius_m,
        "max_speed_mps": c.max_speed_mps,
        "max_accel_mps2": c.max_accel_mps2,
        "slippage_amount": c.slippage_amount,
    }
    for name, value in values.items():
        if not math.isfinite(value):
            raise ValueError(f"{name} must be finite, got {value!r}")

    if c.wheel_base_m <= 0 or c.wheel_radius_m <= 0:
        raise ValueError("wheel_base_m and wheel_radius_m must be positive")
    if c.max_speed_mps < 0:
        raise ValueError("max_speed_mps must not be negative")
    if c.max_accel_mps2 < 0:
        raise ValueError("max_accel_mps2 must not be negative")
    if not 0.0 <= c.slippage_amount <= 1.0:
        raise ValueError("slippage_amount must be within [0, 1]")
    return c


class ConfigManager:
    def __init__(self, config_dir: Path = DEFAULT_CONFIG_DIR):
        self.config_dir = config_dir
        self.paths = {
            "robot": config_dir / "robot.yaml",
            "run": config_dir / "run.yaml",
        }
        self._last_mtimes: dict[str, float] = {}
        self._last_check_s = 0.0

    def load_all(self) -> tuple[RobotConstants, RunParams]:
        robot_raw = self._load_yaml("robot")
        run_raw = self._load_yaml("run")
        constants = RobotConstants(**{k: float(v) for k, v in robot_raw.items()})
        return validate_constants(constants), RunParams(**run_raw)

    def maybe_reload(
        self,
        now_s: float,
        reload_period_s: float = 0.25,
    ) -> tuple[bool, tuple[RobotConstants, RunParams] | None]:
        if now_s - self._last_check_s < reload_period_s:
            return False, None

        self._last_check_s = now_s
        changed = False
        for key, path in self.paths.items():
            mtime = os.path.getmtime(path)
            old = self._last_mtimes.get(key)
            if old is None:
                self._last_mtimes[key] = mtime
                continue
            if mtime > old:
                self._last_mtimes[key] = mtime
                changed = True

        if not changed:
            return False, None

        return True, self.load_all()

    def _load_yaml(self, name: str) -> dict[str, Any]:
        path = self.paths[name]
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config {path} is not a mapping")

        self._last_mtimes[name] = os.path.getmtime(path)
        return data
