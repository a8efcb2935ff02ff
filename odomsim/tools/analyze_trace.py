#!/usr/bin/env python3
from __future__ import annotations

import argparse
import csv
import json
from pathlib import Path


def summarize(rows: list[dict[str, str]]) -> dict[str, float]:
    final = rows[-1]
    return {
        "samples": len(rows),
        "final_gt_x_m": float(final["gt_x_m"]),
        "final_gt_y_m": float(final["gt_y_m"]),
        "final_gt_theta_rad": float(final["gt_theta_rad"]),
        "final_odom_x_m": float(final["odom_x_m"]),
        "final_odom_y_m": float(final["odom_y_m"]),
        "final_odom_theta_rad": float(final["odom_theta_rad"]),
        "max_position_error_m": max(float(r["position_error_m"]) for r in rows),
        "max_abs_heading_error_rad": max(abs(float(r["heading_error_rad"])) for r in rows),
        "max_speed_mps": max(abs(float(r["gt_linear_vel_mps"])) for r in rows),
    }


def main() -> None:
    p = argparse.ArgumentParser(description="Analyze simulator trace")
    p.add_argument("trace", type=str)
    p.add_argument("--report", type=str, default=None, help="Optional report.json path")
    args = p.parse_args()

    path = Path(args.trace)
    with path.open("r", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    if not rows:
        print("Empty trace")
        return

    s = summarize(rows)
    print(f"samples: {s['samples']}")
    print(
        f"final truth: x={s['final_gt_x_m']:.3f} m, y={s['final_gt_y_m']:.3f} m, "
        f"theta={s['final_gt_theta_rad']:.3f} rad"
    )
    print(
        f"final odometry: x={s['final_odom_x_m']:.3f} m, y={s['final_odom_y_m']:.3f} m, "
        f"theta={s['final_odom_theta_rad']:.3f} rad"
    )
    print(f"max drift: {s['max_position_error_m']:.4f} m")
    print(f"max heading error: {s['max_abs_heading_error_rad']:.4f} rad")
    print(f"max speed: {s['max_speed_mps']:.3f} m/s")

    if args.report:
        report_path = Path(args.report)
        if report_path.exists():
            report = json.loads(report_path.read_text(encoding="utf-8"))
            extra = report.get("extra", {})
            print(f"ticks: {extra.get('ticks', 'n/a')}")
            dropped = extra.get("observer_dropped")
            if dropped:
                print(f"observer dropped: {dropped}")


if __name__ == "__main__":
    main()
