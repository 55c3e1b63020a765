import numpy as np
import pytest

from biosim.epidemic import (
    SEIRSParams,
    SIRSParams,
    endemic_equilibrium,
    seirs_rhs,
    simulate_seirs,
    simulate_sirs,
    sirs_rhs,
)

SIRS = SIRSParams(beta=0.4, gamma=0.2, delta=0.005, population_size=1000.0)


def test_sirs_conserves_population():
    res = simulate_sirs(SIRS)
    total = res.states.sum(axis=1)
    assert res.names == ("S", "I", "R")
    assert res.states[0].tolist() == [995.0, 5.0, 0.0]
    assert np.max(np.abs(total - 1000.0)) <= 1e-6 * 1000.0


def test_sir_limit_has_non_decreasing_recovered():
    params = SIRSParams(beta=0.4, gamma=0.2, delta=0.0, population_size=1000.0)
    res = simulate_sirs(params, t_end=300.0)
    assert np.all(np.diff(res["R"]) >= -1e-9 * 1000.0)
    assert np.all(np.diff(res["S"]) <= 1e-9 * 1000.0)
    assert np.max(np.abs(res.states.sum(axis=1) - 1000.0)) <= 1e-6 * 1000.0


def test_seirs_conserves_population():
    params = SEIRSParams(beta=0.5, sigma=0.2, gamma=0.2, delta=0.01, population_size=1000.0)
    res = simulate_seirs(params, infectious0=5.0, exposed0=10.0, t_end=500.0)
    assert res.names == ("S", "E", "I", "R")
    assert res.states[0, 0] == pytest.approx(985.0)
    assert np.max(np.abs(res.states.sum(axis=1) - 1000.0)) <= 1e-6 * 1000.0
    assert np.all(res.states >= -1e-6)


def test_endemic_equilibrium_is_fixed_point():
    eq = endemic_equilibrium(SIRS)
    assert eq["S"] == pytest.approx(500.0)
    assert sum(eq.values()) == pytest.approx(1000.0)
    deriv = sirs_rhs(0.0, [eq["S"], eq["I"], eq["R"]], SIRS)
    assert np.allclose(deriv, 0.0, atol=1e-9)


def test_disease_free_equilibrium_below_threshold():
    params = SIRSParams(beta=0.1, gamma=0.2, delta=0.005, population_size=1000.0)
    assert params.basic_reproduction_number() == pytest.approx(0.5)
    assert endemic_equilibrium(params) == {"S": 1000.0, "I": 0.0, "R": 0.0}
    res = simulate_sirs(params, t_end=200.0)
    assert res["I"][-1] < res["I"][0]


def test_seirs_rhs_sums_to_zero():
    params = SEIRSParams(beta=0.5, sigma=0.3, gamma=0.2, delta=0.01, population_size=100.0)
    assert sum(seirs_rhs(0.0, [60.0, 10.0, 20.0, 10.0], params)) == pytest.approx(0.0, abs=1e-12)


def test_sir_limit_returns_disease_free_point():
    params = SIRSParams(beta=0.4, gamma=0.2, delta=0.0, population_size=1000.0)
    assert endemic_equilibrium(params) == {"S": 1000.0, "I": 0.0, "R": 0.0}
