import matplotlib.pyplot as plt
import numpy as np

from biosim.binding import BindingParams, simulate_binding
from biosim.data import example_calibration, example_velocity_assay
from biosim.engine import integrate
from biosim.enzyme import analyze_assay
from biosim.pk import OralDoseParams, oral_concentration
from biosim.plotting import plot_assay, plot_binding, plot_concentration_curve, plot_trajectory


def test_plot_trajectory(tmp_path):
    traj = integrate(lambda t, s, p: [-s[0], s[0]], {"A": 1.0, "B": 0.0}, np.linspace(0, 2, 21))
    fig = plot_trajectory(traj, labels=["a", "b"], title="decay")
    ax = fig.axes[0]
    assert len(ax.lines) == 2
    assert ax.get_title() == "decay"
    out = tmp_path / "traj.png"
    fig.savefig(out)
    plt.close(fig)
    assert out.stat().st_size > 0


def test_plot_concentration_curve_marks_tmax():
    t = np.linspace(0, 24, 241)
    conc = oral_concentration(t, OralDoseParams(dose=1000.0, absorption_rate=0.9, half_life=5.0))
    fig = plot_concentration_curve(t, conc, tmax=2.5)
    assert len(fig.axes[0].lines) == 2
    plt.close(fig)


def test_plot_binding():
    traj = simulate_binding(BindingParams(0.6, 0.01, 2000.0, 0.0167), t_end=50.0, dt=1.0)
    fig = plot_binding(traj, probe_time=3.0, probe_value=58.3, steady_time=40.0)
    assert len(fig.axes[0].lines) == 4
    plt.close(fig)


def test_plot_assay():
    analysis = analyze_assay(example_calibration(), example_velocity_assay())
    fig = plot_assay(analysis)
    assert len(fig.axes) == 2
    assert fig.axes[1].get_title().startswith("Vmax")
    plt.close(fig)
