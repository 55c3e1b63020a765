from __future__ import annotations

from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .engine import Trajectory
from .enzyme import AssayAnalysis, michaelis_menten


def plot_trajectory(
    trajectory: Trajectory,
    columns: Optional[Sequence[str]] = None,
    *,
    labels: Optional[Sequence[str]] = None,
    xlabel: str = "Time",
    ylabel: str = "Value",
    title: Optional[str] = None,
) -> Figure:
    columns = list(columns) if columns is not None else list(trajectory.names)
    labels = list(labels) if labels is not None else columns
    fig, ax = plt.subplots(figsize=(8, 5))
    for col, label in zip(columns, labels):
        ax.plot(trajectory.times, trajectory[col], label=label)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    if title:
        ax.set_title(title)
    ax.legend(loc="best")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def plot_concentration_curve(
    times: Sequence[float],
    concentration: Sequence[float],
    *,
    tmax: Optional[float] = None,
    xlabel: str = "Time (h)",
    ylabel: str = "Plasma Concentration",
) -> Figure:
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(times, concentration, color="darkgreen")
    if tmax is not None:
        ax.axvline(tmax, color="grey", linestyle="--")
        ax.annotate(f"Tmax {tmax:.2f}", xy=(tmax, float(np.max(concentration))), xytext=(5, -15), textcoords="offset points")
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    fig.tight_layout()
    return fig


def plot_binding(
    trajectory: Trajectory,
    *,
    probe_time: float,
    probe_value: float,
    steady_time: float,
    xlabel: str = "Time (s)",
    ylabel: str = "Bound Receptors",
) -> Figure:
    """Binding curve with the probe reading and the steady-state time marked."""
    bound = trajectory["C"]
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(trajectory.times, bound, color="blue")
    ax.axhline(probe_value, color="blue", linestyle="--")
    ax.axvline(probe_time, color="red", linewidth=2)
    ax.text(0, probe_value, f"{probe_value:.2f}", va="bottom")
    ax.axvline(steady_time, color="green", linestyle="--")
    ax.text(steady_time, 0.9 * float(np.max(bound)), f"Steady at {steady_time:.2f}", color="green")
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    fig.tight_layout()
    return fig


def plot_assay(analysis: AssayAnalysis) -> Figure:
    """Calibration line and Michaelis-Menten fit side by side."""
    fig, (ax_cal, ax_mm) = plt.subplots(1, 2, figsize=(12, 5))

    cal = analysis.calibration
    nadh = np.linspace(0.0, float(np.max(analysis.nadh)), 50)
    ax_cal.scatter(analysis.nadh, analysis.absorbance, color="black")
    ax_cal.plot(nadh, cal.predict(nadh), color="red")
    ax_cal.set_xlabel("NADH (mM)")
    ax_cal.set_ylabel("Absorbance")
    ax_cal.set_title(f"slope = {cal.slope:.4g}")

    params = analysis.fit.params
    s_max = float(np.max(analysis.substrate))
    s_grid = np.linspace(0.0, 1.1 * s_max, 200)
    ax_mm.scatter(analysis.substrate, analysis.velocity, color="black")
    ax_mm.plot(s_grid, michaelis_menten(s_grid, params), color="red")
    ax_mm.set_xlabel("Substrate (mM)")
    ax_mm.set_ylabel("Velocity (mM/s)")
    ax_mm.set_title(f"Vmax = {params['Vmax']:.4g}, Km = {params['Km']:.4g}")
    fig.tight_layout()
    return fig
