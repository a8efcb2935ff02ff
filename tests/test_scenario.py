from pathlib import Path

import pytest

from odomsim.engine.scenario import ScriptedCommands, Segment

SCENARIO_DIR = Path(__file__).resolve().parents[1] / "odomsim" / "scenarios"


def test_command_timeline():
    s = ScriptedCommands(
        [
            Segment(1.0, 5.0, 5.0, "forward"),
            Segment(0.5, -2.0, 2.0),
        ]
    )
    assert s.total_duration_s() == 1.5
    assert s.command_at(0.0) == (5.0, 5.0)
    assert s.command_at(0.999) == (5.0, 5.0)
    assert s.command_at(1.0) == (-2.0, 2.0)
    assert s.command_at(1.5) == (0.0, 0.0)
    assert s.label_at(0.2) == "forward"
    assert s.label_at(1.2) == "SEGMENT_2"
    assert s.label_at(9.0) == "DONE"


def test_empty_timeline():
    s = ScriptedCommands([])
    assert s.total_duration_s() == 0.0
    assert s.command_at(0.0) == (0.0, 0.0)


@pytest.mark.parametrize("name", ["square.yaml", "arc.yaml"])
def test_packaged_scenarios_load(name):
    s = ScriptedCommands.from_yaml(SCENARIO_DIR / name)
    assert s.total_duration_s() > 0
    assert s.command_at(s.total_duration_s() + 1.0) == (0.0, 0.0)


def test_invalid_scenario_file(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("waypoints: []\n", encoding="utf-8")
    with pytest.raises(ValueError):
        ScriptedCommands.from_yaml(path)


def test_negative_duration_rejected(tmp_path):
    path = tmp_path / "neg.yaml"
    path.write_text(
        "segments:\n  - duration_s: -1\n    left_velocity_rad_s: 1\n    right_velocity_rad_s: 1\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError):
        ScriptedCommands.from_yaml(path)
