import argparse
import logging
import sys
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
from pydantic import BaseModel

from .analysis import local_maxima, steady_state_time, time_of_peak, value_at
from .binding import BindingParams, equilibrium_bound, simulate_binding
from .config import Settings, load_settings
from .data import (
    EXAMPLE_START_PARAMS,
    example_calibration,
    example_velocity_assay,
    load_calibration_csv,
    load_velocity_csv,
)
from .engine import Trajectory
from .enzyme import analyze_assay
from .epidemic import SEIRSParams, SIRSParams, endemic_equilibrium, simulate_seirs, simulate_sirs
from .errors import BioSimError, InvalidInput
from .pk import GutBloodParams, OralDoseParams, oral_concentration, oral_tmax, simulate_gut_blood
from .plotting import plot_assay, plot_binding, plot_concentration_curve, plot_trajectory

logger = logging.getLogger(__name__)


def _add_output_args(p: argparse.ArgumentParser, csv_default: str) -> None:
    p.add_argument("--csv", type=str, default=csv_default, help="Output CSV path")
    p.add_argument("--plot", type=str, default=None, help="Write a PNG figure to this path")


def _add_time_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--tend", dest="t_end", type=float, help="End time")
    p.add_argument("--dt", type=float, help="Output spacing")


def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="BioSim - systems biology models")
    parser.add_argument("--config", type=str, default=None, help="JSON settings file")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default from settings)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_gb = sub.add_parser("gut-blood", help="Two-compartment gut-blood ODE")
    p_gb.add_argument("--half-life", dest="half_life", type=float, help="Elimination half-life (h)")
    p_gb.add_argument("--absorption-rate", dest="absorption_rate", type=float, help="Absorption rate (1/h)")
    p_gb.add_argument("--dose", type=float, help="Initial amount in the gut")
    _add_time_args(p_gb)
    _add_output_args(p_gb, "gut_blood.csv")

    p_oral = sub.add_parser("oral-pk", help="Analytical oral-dose concentration curve")
    p_oral.add_argument("--half-life", dest="half_life", type=float, help="Elimination half-life (h)")
    p_oral.add_argument("--absorption-rate", dest="absorption_rate", type=float, help="Absorption rate ka (1/h)")
    p_oral.add_argument("--dose", type=float, help="Dose")
    _add_time_args(p_oral)
    _add_output_args(p_oral, "oral_pk.csv")

    p_bind = sub.add_parser("binding", help="Ligand-receptor binding ODE")
    p_bind.add_argument("--kon", type=float)
    p_bind.add_argument("--koff", type=float)
    p_bind.add_argument("--rtot", dest="receptor_total", type=float, help="Total receptors")
    p_bind.add_argument("--ligand", dest="ligand_concentration", type=float, help="Free ligand concentration")
    p_bind.add_argument("--probe-time", dest="probe_time", type=float, help="Report bound receptors at this time")
    _add_time_args(p_bind)
    _add_output_args(p_bind, "binding.csv")

    p_enz = sub.add_parser("enzyme", help="NADH calibration and Michaelis-Menten fit")
    p_enz.add_argument("--calibration", type=str, default=None, help="CSV with columns nadh,absorbance")
    p_enz.add_argument("--velocities", type=str, default=None, help="CSV with columns substrate,abs_t1,abs_t2")
    p_enz.add_argument("--interval", type=float, help="Time between the two absorbance readings")
    p_enz.add_argument("--vmax0", type=float, help="Starting value for Vmax")
    p_enz.add_argument("--km0", type=float, help="Starting value for Km")
    _add_output_args(p_enz, "enzyme_fit.csv")

    for name, help_text, csv_default in (
        ("sirs", "SIRS epidemic ODE", "sirs.csv"),
        ("seirs", "SEIRS epidemic ODE", "seirs.csv"),
    ):
        p_epi = sub.add_parser(name, help=help_text)
        p_epi.add_argument("--beta", type=float, help="Transmission rate")
        p_epi.add_argument("--gamma", type=float, help="Recovery rate")
        p_epi.add_argument("--delta", type=float, help="Immunity loss rate")
        p_epi.add_argument("--population", dest="population_size", type=float, help="Population size N")
        p_epi.add_argument("--i0", dest="infectious0", type=float, help="Initial infectious")
        if name == "seirs":
            p_epi.add_argument("--sigma", type=float, help="Rate of leaving the exposed stage")
            p_epi.add_argument("--e0", dest="exposed0", type=float, help="Initial exposed")
        _add_time_args(p_epi)
        _add_output_args(p_epi, csv_default)

    return parser


def _override(section: BaseModel, args: argparse.Namespace) -> BaseModel:
    """Copy of a settings section with every flag the user passed applied."""
    updates = {
        name: getattr(args, name)
        for name in type(section).model_fields
        if getattr(args, name, None) is not None
    }
    return type(section).model_validate({**section.model_dump(), **updates})


def _save_plot(fig, path: str) -> None:
    fig.savefig(path, dpi=150)
    plt.close(fig)
    logger.info("Wrote plot to %s", path)


def _write_trajectory(traj: Trajectory, path: str) -> None:
    traj.to_frame().to_csv(path, index=False)
    logger.info("Wrote %d rows to %s", len(traj), path)


def _run_gut_blood(args: argparse.Namespace, settings: Settings) -> None:
    cfg = _override(settings.gut_blood, args)
    params = GutBloodParams(absorption_rate=cfg.absorption_rate, half_life=cfg.half_life)
    traj = simulate_gut_blood(params, gut0=cfg.dose, t_end=cfg.t_end, dt=cfg.dt, **settings.solver_options())
    t_peak, b_peak = time_of_peak(traj.times, traj["B"])
    print(f"Peak blood amount: {b_peak:.2f} at t = {t_peak:.2f} h")
    print(f"Blood amount at t = {traj.times[-1]:g} h: {traj['B'][-1]:.2f}")
    peaks = local_maxima(traj["B"])
    if len(peaks) > 1:
        logger.warning("Blood curve has %d local maxima", len(peaks))
    _write_trajectory(traj, args.csv)
    if args.plot:
        fig = plot_trajectory(traj, labels=["Gut", "Blood"], xlabel="Time (h)", ylabel="Concentration")
        _save_plot(fig, args.plot)


def _run_oral_pk(args: argparse.Namespace, settings: Settings) -> None:
    cfg = _override(settings.oral_pk, args)
    params = OralDoseParams(dose=cfg.dose, absorption_rate=cfg.absorption_rate, half_life=cfg.half_life)
    times = np.arange(0.0, cfg.t_end + cfg.dt / 2, cfg.dt)
    conc = oral_concentration(times, params)
    t_max, c_max = time_of_peak(times, conc)
    print(f"Time of peak concentration (Tmax): {round(t_max, 2)} h")
    print(f"Peak concentration (Cmax): {c_max:.2f}")
    print(f"Analytical Tmax: {oral_tmax(params):.4f} h")
    traj = Trajectory(times=times, states=conc.reshape(-1, 1), names=("C",))
    _write_trajectory(traj, args.csv)
    if args.plot:
        _save_plot(plot_concentration_curve(times, conc, tmax=t_max), args.plot)


def _run_binding(args: argparse.Namespace, settings: Settings) -> None:
    cfg = _override(settings.binding, args)
    params = BindingParams(
        kon=cfg.kon,
        koff=cfg.koff,
        receptor_total=cfg.receptor_total,
        ligand_concentration=cfg.ligand_concentration,
    )
    traj = simulate_binding(params, t_end=cfg.t_end, dt=cfg.dt, **settings.solver_options())
    bound = traj["C"]
    probe = value_at(traj.times, bound, cfg.probe_time)
    ss_time = steady_state_time(traj.times, bound, cfg.steady_fraction)
    print(f"Receptors bound at t = {cfg.probe_time:g} s: {probe:.2f}")
    print(f"Steady at {ss_time:.2f} s ({cfg.steady_fraction:.0%} of final value {bound[-1]:.2f})")
    print(f"Equilibrium bound receptors: {equilibrium_bound(params):.2f}")
    _write_trajectory(traj, args.csv)
    if args.plot:
        fig = plot_binding(traj, probe_time=cfg.probe_time, probe_value=probe, steady_time=ss_time)
        _save_plot(fig, args.plot)


def _run_enzyme(args: argparse.Namespace, settings: Settings) -> None:
    cfg = _override(settings.enzyme, args)
    calibration = load_calibration_csv(args.calibration) if args.calibration else example_calibration()
    velocities = load_velocity_csv(args.velocities) if args.velocities else example_velocity_assay()
    if (cfg.vmax0 is None) != (cfg.km0 is None):
        raise InvalidInput("give both --vmax0 and --km0, or neither")
    initial: Optional[Dict[str, float]] = None
    if cfg.vmax0 is not None:
        initial = {"Vmax": cfg.vmax0, "Km": cfg.km0}
    elif not (args.calibration or args.velocities):
        initial = dict(EXAMPLE_START_PARAMS)
    # otherwise fit_michaelis_menten starts from default_guess
    analysis = analyze_assay(
        calibration,
        velocities,
        interval=cfg.interval,
        initial_params=initial,
        **settings.fit_options(),
    )
    cal = analysis.calibration
    result = analysis.fit
    print(f"Calibration slope: {cal.slope:.4f} (SE {cal.std_error:.4f})")
    print(result.summary().to_string())
    print(f"Residual standard error: {result.sigma:.4g} on {result.dof} degrees of freedom")
    print(f"{result.confidence:.0%} confidence intervals:")
    for name, (lower, upper) in result.conf_int.items():
        print(f"  {name}: [{lower:.6g}, {upper:.6g}]")
    analysis.to_frame().to_csv(args.csv, index=False)
    logger.info("Wrote fit table to %s", args.csv)
    if args.plot:
        _save_plot(plot_assay(analysis), args.plot)


def _report_epidemic(traj: Trajectory, r0: float) -> None:
    t_peak, i_peak = time_of_peak(traj.times, traj["I"])
    print(f"R0 = {r0:.2f}")
    print(f"Peak infectious: {i_peak:.1f} at t = {t_peak:g}")
    final = ", ".join(f"{k}={v:.1f}" for k, v in traj.final_state.items())
    print(f"Final state: {final}")


def _run_sirs(args: argparse.Namespace, settings: Settings) -> None:
    cfg = _override(settings.epidemic, args)
    params = SIRSParams(beta=cfg.beta, gamma=cfg.gamma, delta=cfg.delta, population_size=cfg.population_size)
    traj = simulate_sirs(
        params,
        infectious0=cfg.infectious0,
        recovered0=cfg.recovered0,
        t_end=cfg.t_end,
        dt=cfg.dt,
        **settings.solver_options(),
    )
    _report_epidemic(traj, params.basic_reproduction_number())
    if params.delta > 0:
        eq = endemic_equilibrium(params)
        print("Endemic equilibrium: " + ", ".join(f"{k}={v:.1f}" for k, v in eq.items()))
    else:
        print("No endemic equilibrium without waning immunity (delta = 0)")
    _write_trajectory(traj, args.csv)
    if args.plot:
        fig = plot_trajectory(traj, labels=["Susceptible", "Infectious", "Recovered"], ylabel="Individuals")
        _save_plot(fig, args.plot)


def _run_seirs(args: argparse.Namespace, settings: Settings) -> None:
    cfg = _override(settings.epidemic, args)
    if cfg.sigma is None:
        raise InvalidInput("SEIRS needs the incubation rate: pass --sigma or set epidemic.sigma")
    params = SEIRSParams(
        beta=cfg.beta,
        sigma=cfg.sigma,
        gamma=cfg.gamma,
        delta=cfg.delta,
        population_size=cfg.population_size,
    )
    traj = simulate_seirs(
        params,
        infectious0=cfg.infectious0,
        exposed0=cfg.exposed0,
        recovered0=cfg.recovered0,
        t_end=cfg.t_end,
        dt=cfg.dt,
        **settings.solver_options(),
    )
    _report_epidemic(traj, params.basic_reproduction_number())
    _write_trajectory(traj, args.csv)
    if args.plot:
        fig = plot_trajectory(
            traj, labels=["Susceptible", "Exposed", "Infectious", "Recovered"], ylabel="Individuals"
        )
        _save_plot(fig, args.plot)


COMMANDS = {
    "gut-blood": _run_gut_blood,
    "oral-pk": _run_oral_pk,
    "binding": _run_binding,
    "enzyme": _run_enzyme,
    "sirs": _run_sirs,
    "seirs": _run_seirs,
}


def run_cli(argv: Optional[List[str]] = None) -> int:
    args = build_argparser().parse_args(argv)
    try:
        settings = load_settings(args.config)
    except (ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    level = (args.log_level or settings.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format="%(levelname)s: %(message)s")

    try:
        COMMANDS[args.cmd](args, settings)
    except (BioSimError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
