#!/usr/bin/env python3
from __future__ import annotations

import argparse
import csv
from pathlib import Path


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Plot ground truth against odometry from a simulator trace")
    p.add_argument("trace", type=str, help="Path to trace.csv")
    p.add_argument("--save", type=str, default=None, help="Write the figure to this path instead of showing it")
    return p.parse_args()


def load_rows(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def main() -> None:
    args = parse_args()

    try:
        import matplotlib.pyplot as plt
    except Exception as exc:
        raise SystemExit(f"matplotlib is required for visualization: {exc}")

    rows = load_rows(Path(args.trace))
    if not rows:
        raise SystemExit("Trace is empty")

    t = [float(r["time_s"]) for r in rows]
    gt_x = [float(r["gt_x_m"]) for r in rows]
    gt_y = [float(r["gt_y_m"]) for r in rows]
    od_x = [float(r["odom_x_m"]) for r in rows]
    od_y = [float(r["odom_y_m"]) for r in rows]
    err = [float(r["position_error_m"]) for r in rows]

    fig, (ax_path, ax_err) = plt.subplots(1, 2, figsize=(13, 6))

    ax_path.set_title("Ground truth vs odometry")
    ax_path.set_xlabel("x (m)")
    ax_path.set_ylabel("y (m)")
    ax_path.grid(True, alpha=0.25)
    ax_path.axis("equal")
    ax_path.plot(gt_x, gt_y, linewidth=1.6, label="ground truth")
    ax_path.plot(od_x, od_y, linewidth=1.2, linestyle="--", label="odometry")
    ax_path.plot([gt_x[-1]], [gt_y[-1]], marker="o", label="final (truth)")
    ax_path.plot([od_x[-1]], [od_y[-1]], marker="x", label="final (odometry)")
    ax_path.legend(loc="upper right")

    ax_err.set_title("Odometry position error")
    ax_err.set_xlabel("time (s)")
    ax_err.set_ylabel("error (m)")
    ax_err.grid(True, alpha=0.25)
    ax_err.plot(t, err, linewidth=1.3)

    fig.tight_layout()
    if args.save:
        fig.savefig(args.save, dpi=120)
        print(f"Saved: {args.save}")
    else:
        plt.show()


if __name__ == "__main__":
    main()
