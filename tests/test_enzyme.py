import numpy as np
import pandas as pd
import pytest

from biosim.data import example_calibration, example_velocity_assay, load_calibration_csv, load_velocity_csv
from biosim.enzyme import (
    analyze_assay,
    calibrate,
    default_guess,
    fit_michaelis_menten,
    initial_velocities,
    michaelis_menten,
)
from biosim.errors import InvalidInput


def test_michaelis_menten_half_saturation():
    v = michaelis_menten([0.5, 1e9], {"Vmax": 2.0, "Km": 0.5})
    assert v[0] == pytest.approx(1.0)
    assert v[1] == pytest.approx(2.0)


def test_velocities_from_absorbance_drop():
    cal = calibrate([0.0, 1.0, 2.0], [0.0, 5.0, 10.0])
    v = initial_velocities([1.0, 0.5], [0.8, 0.4], cal, interval=10.0)
    assert cal.slope == pytest.approx(5.0)
    assert np.allclose(v, [0.004, 0.002])
    with pytest.raises(InvalidInput):
        initial_velocities([1.0], [0.8], cal, interval=0.0)


def test_default_guess():
    guess = default_guess([0.1, 0.5, 1.0, 4.0], [0.2, 0.5, 0.7, 1.0])
    assert guess == {"Vmax": 1.0, "Km": 0.5}


def test_fit_without_initial_params():
    s = np.array([0.1, 0.2, 0.5, 1.0, 2.0, 5.0])
    v = michaelis_menten(s, {"Vmax": 3.0, "Km": 0.7})
    res = fit_michaelis_menten(s, v)
    assert res.params["Vmax"] == pytest.approx(3.0, rel=1e-4)
    assert res.params["Km"] == pytest.approx(0.7, rel=1e-4)


def test_example_assay():
    analysis = analyze_assay(
        example_calibration(), example_velocity_assay(), initial_params={"Vmax": 0.008, "Km": 0.5}
    )
    assert analysis.calibration.dof == 5
    assert analysis.fit.dof == 3
    assert 0.002 < analysis.fit.params["Vmax"] < 0.005
    assert 0.05 < analysis.fit.params["Km"] < 2.0
    assert np.all(analysis.velocity > 0)
    lower, upper = analysis.fit.conf_int["Vmax"]
    assert lower < analysis.fit.params["Vmax"] < upper
    table = analysis.to_frame()
    assert list(table.columns) == ["substrate", "velocity", "fitted", "residual"]
    assert np.allclose(table["velocity"], table["fitted"] + table["residual"])


def test_load_csv_tables(tmp_path):
    cal_path = tmp_path / "cal.csv"
    vel_path = tmp_path / "vel.csv"
    example_calibration().rename(columns={"nadh": " NADH "}).to_csv(cal_path, index=False)
    example_velocity_assay().to_csv(vel_path, index=False)
    cal = load_calibration_csv(str(cal_path))
    vel = load_velocity_csv(str(vel_path))
    assert list(cal.columns) == ["nadh", "absorbance"]
    assert len(vel) == 5
    pd.testing.assert_frame_equal(vel, example_velocity_assay())


def test_load_csv_missing_column(tmp_path):
    path = tmp_path / "bad.csv"
    pd.DataFrame({"substrate": [0.1], "abs_t1": [1.0]}).to_csv(path, index=False)
    with pytest.raises(ValueError, match="Missing columns"):
        load_velocity_csv(str(path))
