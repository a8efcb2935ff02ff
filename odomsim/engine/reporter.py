from __future__ import annotations

import csv
import json
import math
from dataclasses import asdict
from pathlib import Path

from .kinematics import wrap_angle
from .types import StateSnapshot

TRACE_COLUMNS = [
    "time_s",
    "gt_x_m",
    "gt_y_m",
    "gt_theta_rad",
    "gt_linear_vel_mps",
    "gt_angular_vel_rad_s",
    "odom_x_m",
    "odom_y_m",
    "odom_theta_rad",
    "odom_linear_vel_mps",
    "odom_angular_vel_rad_s",
    "left_wheel_rad_s",
    "right_wheel_rad_s",
    "left_rotation_rad",
    "right_rotation_rad",
    "position_error_m",
    "heading_error_rad",
]


def position_error(snap: StateSnapshot) -> float:
    gt, odom = snap.ground_truth, snap.odometry
    return math.hypot(gt.x_m - odom.x_m, gt.y_m - odom.y_m)


def heading_error(snap: StateSnapshot) -> float:
    return wrap_angle(snap.odometry.theta_rad - snap.ground_truth.theta_rad)


def _pose_dict(s) -> dict[str, float]:
    return {"x_m": s.x_m, "y_m": s.y_m, "theta_rad": s.theta_rad}


class TraceWriter:
    def __init__(self, out_dir: Path):
        self.out_dir = out_dir
        self.out_dir.mkdir(parents=True, exist_ok=True)

        self.trace_path = out_dir / "trace.csv"
        self.events_path = out_dir / "events.csv"

        self._trace_f = self.trace_path.open("w", newline="", encoding="utf-8")
        self._events_f = self.events_path.open("w", newline="", encoding="utf-8")
        self._trace = csv.writer(self._trace_f)
        self._events = csv.writer(self._events_f)

        self._trace.writerow(TRACE_COLUMNS)
        self._events.writerow(["time_s", "event", "details"])

        self.samples = 0
        self.max_position_error_m = 0.0
        self.max_abs_heading_error_rad = 0.0
        self.last: StateSnapshot | None = None

    def write(self, snap: StateSnapshot, time_s: float) -> None:
        gt, odom = snap.ground_truth, snap.odometry
        pos_err = position_error(snap)
        head_err = heading_error(snap)

        self.samples += 1
        self.max_position_error_m = max(self.max_position_error_m, pos_err)
        self.max_abs_heading_error_rad = max(self.max_abs_heading_error_rad, abs(head_err))
        self.last = snap

        self._trace.writerow(
            [
                f"{time_s:.6f}",
                f"{gt.x_m:.6f}",
                f"{gt.y_m:.6f}",
                f"{gt.theta_rad:.6f}",
                f"{gt.linear_vel_mps:.6f}",
                f"{gt.angular_vel_rad_s:.6f}",
                f"{odom.x_m:.6f}",
                f"{odom.y_m:.6f}",
                f"{odom.theta_rad:.6f}",
                f"{odom.linear_vel_mps:.6f}",
                f"{odom.angular_vel_rad_s:.6f}",
                f"{gt.left_wheel.velocity_rad_s:.6f}",
                f"{gt.right_wheel.velocity_rad_s:.6f}",
                f"{gt.left_wheel.rotation_rad:.6f}",
                f"{gt.right_wheel.rotation_rad:.6f}",
                f"{pos_err:.6f}",
                f"{head_err:.6f}",
            ]
        )

    def event(self, time_s: float, event: str, details: str) -> None:
        self._events.writerow([f"{time_s:.6f}", event, details])

    def close(self) -> None:
        self._trace_f.close()
        self._events_f.close()

    def write_report(
        self,
        duration_s: float,
        extra: dict[str, object] | None = None,
    ) -> Path:
        report_path = self.out_dir / "report.json"
        last = self.last
        summary = {
            "duration_s": duration_s,
            "samples": self.samples,
            "max_position_error_m": self.max_position_error_m,
            "max_abs_heading_error_rad": self.max_abs_heading_error_rad,
            "final_position_error_m": position_error(last) if last else 0.0,
            "final_heading_error_rad": heading_error(last) if last else 0.0,
            "final_ground_truth": _pose_dict(last.ground_truth) if last else None,
            "final_odometry": _pose_dict(last.odometry) if last else None,
            "constants": asdict(last.constants) if last else None,
            "extra": extra or {},
        }
        report_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        return report_path
