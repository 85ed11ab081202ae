"""Headless driver smoke tests."""

from __future__ import annotations

import life3d_bench
from life3d_bench import main, simulate_render_work
from tests.factories import make_life


def test_line_timing_run_with_stats(tmp_path, capsys):
    stats = tmp_path / "stats.csv"
    rc = main([
        "-n", "3", "--size", "6", "6", "6", "--seed", "1",
        "--probability", "0.3", "--line-timing", "--stats", str(stats),
    ])
    out = capsys.readouterr().out
    assert rc == 0
    assert "World: 6x6x6" in out
    assert "step()" in out
    assert "Final: gen 3" in out
    # header + init row + one row per step
    assert len(stats.read_text().splitlines()) == 5


def test_profiled_run(tmp_path, capsys):
    dump = tmp_path / "prof.out"
    rc = main([
        "-n", "2", "--size", "4", "4", "4", "--seed", "1",
        "--rule", "B6-8/S5-10", "--boundary", "wrap", "--dump", str(dump),
    ])
    out = capsys.readouterr().out
    assert rc == 0
    assert "Rule: B6-8/S5-10" in out
    assert "Boundary: wrap" in out
    assert "Wall time" in out
    assert dump.exists()


def test_invalid_rule_exits_with_error(capsys):
    assert main(["--rule", "B99/S1", "-n", "1"]) == 1
    assert "Error" in capsys.readouterr().err


def test_invalid_size_exits_with_error(capsys):
    assert main(["--size", "0", "4", "4", "-n", "1"]) == 1
    assert "Error" in capsys.readouterr().err


def test_negative_steps_rejected(capsys):
    assert main(["-n", "-1"]) == 1
    assert "--steps" in capsys.readouterr().err


def test_render_work_counts_one_cube_per_live_cell():
    life = make_life(size=(5, 5, 5), probability=0.4, seed=3)
    timings = simulate_render_work(life)
    assert timings["_cubes"] == life.population()
    assert {"alive_cells", "instances"} <= set(timings)


def test_default_rule_is_a_preset():
    assert life3d_bench.DEFAULT_RULE in life3d_bench.RULES
