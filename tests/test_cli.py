import csv
import json
import subprocess
import sys
from pathlib import Path

from biosim import cli
from biosim.cli import run_cli
from biosim.data import EXAMPLE_START_PARAMS, example_calibration, example_velocity_assay

ROOT = Path(__file__).resolve().parents[1]


def test_cli_gut_blood(tmp_path):
    out_csv = tmp_path / "out.csv"
    cmd = [sys.executable, "-m", "biosim.cli", "gut-blood", "--tend", "10", "--csv", str(out_csv)]
    subprocess.check_call(cmd, cwd=ROOT)
    assert out_csv.exists()
    with open(out_csv, newline="") as f:
        rows = list(csv.reader(f))
        assert len(rows) > 2
        assert rows[0] == ["time", "G", "B"]


def test_cli_oral_pk_reports_tmax(tmp_path, capsys):
    assert run_cli(["oral-pk", "--csv", str(tmp_path / "oral.csv")]) == 0
    out = capsys.readouterr().out
    assert "(Tmax): 2.46 h" in out


def test_cli_binding_with_config(tmp_path, capsys):
    config = tmp_path / "settings.json"
    config.write_text(json.dumps({"binding": {"probe_time": 10, "t_end": 100}}))
    out_csv = tmp_path / "binding.csv"
    assert run_cli(["--config", str(config), "binding", "--csv", str(out_csv)]) == 0
    out = capsys.readouterr().out
    assert "Receptors bound at t = 10 s" in out
    assert "Steady at" in out
    assert out_csv.exists()


def test_cli_enzyme_writes_plot(tmp_path, capsys):
    out_csv = tmp_path / "fit.csv"
    out_png = tmp_path / "fit.png"
    assert run_cli(["enzyme", "--csv", str(out_csv), "--plot", str(out_png)]) == 0
    out = capsys.readouterr().out
    assert "Calibration slope" in out
    assert "Vmax" in out and "Km" in out
    assert out_png.stat().st_size > 0
    with open(out_csv, newline="") as f:
        assert next(csv.reader(f)) == ["substrate", "velocity", "fitted", "residual"]


def test_cli_sirs(tmp_path, capsys):
    assert run_cli(["sirs", "--tend", "200", "--csv", str(tmp_path / "sirs.csv")]) == 0
    out = capsys.readouterr().out
    assert "R0 = 2.00" in out
    assert "Endemic equilibrium" in out


def test_cli_seirs_requires_sigma(tmp_path, capsys):
    assert run_cli(["seirs", "--csv", str(tmp_path / "seirs.csv")]) == 1
    assert "--sigma" in capsys.readouterr().err
    assert run_cli(["seirs", "--sigma", "0.2", "--tend", "100", "--csv", str(tmp_path / "seirs.csv")]) == 0


def test_cli_bad_config(tmp_path, capsys):
    config = tmp_path / "settings.json"
    config.write_text(json.dumps({"binding": {"kon": -1}}))
    assert run_cli(["--config", str(config), "binding"]) == 1
    assert "error:" in capsys.readouterr().err


def _record_initial_params(monkeypatch):
    seen = []
    real = cli.analyze_assay

    def spy(*args, **kwargs):
        seen.append(kwargs.get("initial_params"))
        return real(*args, **kwargs)

    monkeypatch.setattr(cli, "analyze_assay", spy)
    return seen


def test_cli_enzyme_starting_values(tmp_path, monkeypatch):
    seen = _record_initial_params(monkeypatch)
    cal_path = tmp_path / "cal.csv"
    vel_path = tmp_path / "vel.csv"
    example_calibration().to_csv(cal_path, index=False)
    example_velocity_assay().to_csv(vel_path, index=False)
    out_csv = str(tmp_path / "fit.csv")

    assert run_cli(["enzyme", "--csv", out_csv]) == 0
    assert run_cli(["enzyme", "--calibration", str(cal_path), "--velocities", str(vel_path), "--csv", out_csv]) == 0
    assert run_cli(["enzyme", "--vmax0", "0.003", "--km0", "0.4", "--velocities", str(vel_path), "--csv", out_csv]) == 0
    # built-in tables use the fixed start, CSV input the data-derived guess
    assert seen == [EXAMPLE_START_PARAMS, None, {"Vmax": 0.003, "Km": 0.4}]


def test_cli_enzyme_partial_starting_values(tmp_path, capsys):
    assert run_cli(["enzyme", "--vmax0", "0.003", "--csv", str(tmp_path / "fit.csv")]) == 1
    assert "--km0" in capsys.readouterr().err


def test_cli_sir_has_no_endemic_equilibrium(tmp_path, capsys):
    assert run_cli(["sirs", "--delta", "0", "--tend", "100", "--csv", str(tmp_path / "sir.csv")]) == 0
    out = capsys.readouterr().out
    assert "Endemic equilibrium:" not in out
    assert "without waning immunity" in out
