from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass
class Segment:
    duration_s: float
    left_velocity_rad_s: float
    right_velocity_rad_s: float
    label: str = ""


class ScriptedCommands:
    """Piecewise-constant wheel command timeline."""

    def __init__(self, segments: list[Segment]):
        self.segments = segments
        self._ends: list[float] = []
        t = 0.0
        for seg in segments:
            t += seg.duration_s
            self._ends.append(t)

    @classmethod
    def from_yaml(cls, path: Path) -> "ScriptedCommands":
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        if not isinstance(raw, dict) or "segments" not in raw:
            raise ValueError(f"Invalid scenario file: {path}")

        segs: list[Segment] = []
        for item in raw["segments"]:
            duration = float(item["duration_s"])
            if duration < 0:
                raise ValueError(f"Negative segment duration in {path}")
            segs.append(
                Segment(
                    duration_s=duration,
                    left_velocity_rad_s=float(item["left_velocity_rad_s"]),
                    right_velocity_rad_s=float(item["right_velocity_rad_s"]),
                    label=str(item.get("label", "")),
                )
            )
        return cls(segs)

    def total_duration_s(self) -> float:
        return self._ends[-1] if self._ends else 0.0

    def _index_at(self, t_s: float) -> int:
        for i, end in enumerate(self._ends):
            if t_s < end:
                return i
        return len(self.segments)

    def command_at(self, t_s: float) -> tuple[float, float]:
        i = self._index_at(t_s)
        if i >= len(self.segments):
            return 0.0, 0.0
        seg = self.segments[i]
        return seg.left_velocity_rad_s, seg.right_velocity_rad_s

    def label_at(self, t_s: float) -> str:
        i = self._index_at(t_s)
        if i >= len(self.segments):
            return "DONE"
        return self.segments[i].label or f"SEGMENT_{i + 1}"
