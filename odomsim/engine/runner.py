from __future__ import annotations

import argparse
import json
import logging
import queue
import time
from dataclasses import asdict, replace
from pathlib import Path
from random import Random

from .config import DEFAULT_CONFIG_DIR, ConfigManager, validate_constants
from .coordinator import (
    MSG_SESSION_CREATED,
    MSG_SIMULATION_STATUS,
    MSG_STATE_UPDATE,
    Observer,
    SessionCoordinator,
)
from .kinematics import KinematicEngine
from .protocol import (
    MSG_START_SIMULATION,
    MSG_STOP_SIMULATION,
    constants_message,
    dispatch,
    to_wire,
    wheel_command_message,
)
from .reporter import TraceWriter
from .scenario import ScriptedCommands
from .types import Message, RobotConstants, WheelCommand

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[1]


class SimClock:
    """Manually advanced clock for offline runs."""

    def __init__(self, start_s: float = 0.0):
        self.now_s = start_s

    def __call__(self) -> float:
        return self.now_s


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Headless differential-drive odometry simulator")
    p.add_argument("--config-dir", default=str(DEFAULT_CONFIG_DIR), type=str)
    p.add_argument("--scenario", default=str(ROOT / "scenarios" / "square.yaml"), type=str)
    p.add_argument("--out", default="output/run", type=str)
    p.add_argument("--duration", default=None, type=float)
    p.add_argument("--seed", default=None, type=int)
    p.add_argument("--slippage", default=None, type=float, help="Override slippage_amount")
    p.add_argument("--no-realtime", action="store_true", help="Step offline instead of at wall-clock rate")
    p.add_argument("--log-level", default="INFO", type=str)
    return p


def _dispatch_or_fail(coordinator: SessionCoordinator, raw: str) -> None:
    err = dispatch(coordinator, raw)
    if err is not None:
        raise SystemExit(f"command rejected ({err.code}): {err.message}")


def _consume(msg: Message, writer: TraceWriter, wall_start_s: float) -> None:
    if msg.type == MSG_STATE_UPDATE:
        snap = msg.payload
        writer.write(snap, max(0.0, snap.ground_truth.timestamp_s - wall_start_s))
    elif msg.type in (MSG_SESSION_CREATED, MSG_SIMULATION_STATUS):
        writer.event(time.time() - wall_start_s, msg.type, json.dumps(to_wire(msg)["payload"]))


def run_realtime(
    coordinator: SessionCoordinator,
    observer: Observer,
    scenario: ScriptedCommands,
    writer: TraceWriter,
    cfg: ConfigManager,
    reload_period_s: float,
    duration_s: float,
    slippage: float | None = None,
) -> float:
    wall_start = time.time()
    t0 = time.monotonic()
    last_cmd: tuple[float, float] | None = None

    _dispatch_or_fail(coordinator, json.dumps({"type": MSG_START_SIMULATION}))

    while True:
        elapsed = time.monotonic() - t0
        if elapsed >= duration_s:
            break

        cmd = scenario.command_at(elapsed)
        if cmd != last_cmd:
            _dispatch_or_fail(coordinator, wheel_command_message(*cmd))
            writer.event(elapsed, "wheel_command", scenario.label_at(elapsed))
            last_cmd = cmd

        changed, new_cfg = _poll_reload(cfg, elapsed, reload_period_s, slippage)
        if changed and new_cfg is not None:
            constants, _ = new_cfg
            _dispatch_or_fail(coordinator, constants_message(constants))
            writer.event(elapsed, "hot_reload", json.dumps(asdict(constants)))

        try:
            msg = observer.get(timeout=0.02)
        except queue.Empty:
            continue
        _consume(msg, writer, wall_start)

    _dispatch_or_fail(coordinator, json.dumps({"type": MSG_STOP_SIMULATION}))
    for msg in observer.drain():
        _consume(msg, writer, wall_start)

    if observer.dropped:
        logger.warning("Trace observer dropped %d messages", observer.dropped)
    return time.monotonic() - t0


def _with_slippage(constants: RobotConstants, slippage: float | None) -> RobotConstants:
    if slippage is None:
        return constants
    return validate_constants(replace(constants, slippage_amount=slippage))


def _poll_reload(
    cfg: ConfigManager,
    now_s: float,
    reload_period_s: float,
    slippage: float | None = None,
):
    """Check for config changes; a CLI slippage override survives reloads."""
    try:
        changed, new_cfg = cfg.maybe_reload(now_s, reload_period_s)
        if changed and new_cfg is not None:
            constants, run = new_cfg
            new_cfg = (_with_slippage(constants, slippage), run)
        return changed, new_cfg
    except (OSError, ValueError, TypeError) as exc:
        logger.warning("Ignoring invalid config reload: %s", exc)
        return False, None


def run_offline(
    engine: KinematicEngine,
    clock: SimClock,
    scenario: ScriptedCommands,
    writer: TraceWriter,
    dt_s: float,
    duration_s: float,
) -> float:
    steps = int(round(duration_s / dt_s))
    t = 0.0
    last_label = None
    for i in range(steps):
        t = i * dt_s
        label = scenario.label_at(t)
        if label != last_label:
            writer.event(t, "wheel_command", label)
            last_label = label

        left, right = scenario.command_at(t)
        engine.set_wheel_command(WheelCommand(left, right))
        clock.now_s = t + dt_s
        engine.step(dt_s)
        writer.write(engine.snapshot(), clock.now_s)
    return steps * dt_s


def main() -> None:
    args = _build_arg_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = ConfigManager(Path(args.config_dir).resolve())
    try:
        constants, run = cfg.load_all()
        constants = _with_slippage(constants, args.slippage)
    except (OSError, ValueError, TypeError) as exc:
        raise SystemExit(f"invalid configuration: {exc}")

    if args.duration is not None:
        run.duration_s = args.duration
    if args.seed is not None:
        run.seed = args.seed
    if args.no_realtime:
        run.realtime = False

    scenario = ScriptedCommands.from_yaml(Path(args.scenario).resolve())
    rng = Random(run.seed)
    writer = TraceWriter(Path(args.out).resolve())

    sim_start = time.perf_counter()
    try:
        if run.realtime:
            engine = KinematicEngine(constants, rng=rng)
            coordinator = SessionCoordinator(engine, run.rate_hz, run.observer_queue_size)
            observer = coordinator.register()
            try:
                t = run_realtime(
                    coordinator,
                    observer,
                    scenario,
                    writer,
                    cfg,
                    run.reload_period_s,
                    run.duration_s,
                    slippage=args.slippage,
                )
            finally:
                coordinator.stop()
                coordinator.unregister(observer)
            extra = {"ticks": coordinator.tick_count, "observer_dropped": observer.dropped}
        else:
            clock = SimClock()
            engine = KinematicEngine(constants, rng=rng, clock=clock)
            t = run_offline(engine, clock, scenario, writer, run.dt_s, run.duration_s)
            extra = {"ticks": writer.samples}
    finally:
        writer.close()

    report_path = writer.write_report(t, {**extra, "realtime": run.realtime, "seed": run.seed})
    sim_elapsed = time.perf_counter() - sim_start

    print(f"Simulation complete in {sim_elapsed:.3f}s (sim time {t:.3f}s)")
    print(f"Max odometry drift: {writer.max_position_error_m:.4f} m")
    print(f"Trace: {writer.trace_path}")
    print(f"Events: {writer.events_path}")
    print(f"Report: {report_path}")


if __name__ == "__main__":
    main()
