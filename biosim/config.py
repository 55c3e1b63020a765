from __future__ import annotations

import json
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SolverSettings(BaseModel):
    method: Literal["RK45", "RK4"] = "RK45"
    rtol: float = Field(1e-6, gt=0)
    atol: float = Field(1e-9, gt=0)
    max_step: Optional[float] = Field(None, gt=0)
    max_steps: int = Field(100_000, ge=1)

    @model_validator(mode="after")
    def _rk4_needs_step(self) -> "SolverSettings":
        if self.method == "RK4" and self.max_step is None:
            raise ValueError("solver.max_step is required with method RK4")
        return self


class FitSettings(BaseModel):
    confidence: float = Field(0.95, gt=0, lt=1)
    max_iter: int = Field(100, ge=1)
    xtol: float = Field(1e-8, gt=0)
    ftol: float = Field(1e-12, ge=0)


class GutBloodSettings(BaseModel):
    half_life: float = Field(5.0, gt=0)  # h
    absorption_rate: float = Field(0.9, gt=0)  # 1/h
    dose: float = Field(1000.0, ge=0)  # initial gut amount
    t_end: float = Field(40.0, gt=0)
    dt: float = Field(0.01, gt=0)


class OralPKSettings(BaseModel):
    half_life: float = Field(5.0, gt=0)
    absorption_rate: float = Field(0.9, gt=0)
    dose: float = Field(1000.0, ge=0)
    t_end: float = Field(24.0, gt=0)
    dt: float = Field(0.01, gt=0)


class BindingSettings(BaseModel):
    kon: float = Field(0.6, gt=0)
    koff: float = Field(0.01, ge=0)
    receptor_total: float = Field(2000.0, gt=0)
    ligand_concentration: float = Field(0.0167, ge=0)
    t_end: float = Field(300.0, gt=0)  # s
    dt: float = Field(0.1, gt=0)
    probe_time: float = Field(3.0, ge=0)
    steady_fraction: float = Field(0.95, gt=0, le=1)


class EnzymeSettings(BaseModel):
    interval: float = Field(10.0, gt=0)  # time between the two absorbance readings
    # starting values for the fit; unset means 0.008 / 0.5 for the built-in
    # tables and a guess read off the data for CSV input
    vmax0: Optional[float] = Field(None, gt=0)
    km0: Optional[float] = Field(None, gt=0)


class EpidemicSettings(BaseModel):
    beta: float = Field(0.4, ge=0)
    gamma: float = Field(0.2, gt=0)
    delta: float = Field(0.005, ge=0)
    sigma: Optional[float] = Field(None, gt=0)  # SEIRS only, no default on purpose
    population_size: float = Field(1000.0, gt=0)
    infectious0: float = Field(5.0, ge=0)
    exposed0: float = Field(0.0, ge=0)
    recovered0: float = Field(0.0, ge=0)
    t_end: float = Field(1000.0, gt=0)
    dt: float = Field(1.0, gt=0)


class Settings(BaseSettings):
    """All model and numerical settings.

    Environment variables override the defaults, e.g. BIOSIM_LOG_LEVEL=DEBUG
    or BIOSIM_BINDING__KON=0.5; values passed explicitly (from a JSON file)
    override both.
    """
    model_config = SettingsConfigDict(env_prefix="BIOSIM_", env_nested_delimiter="__")

    log_level: str = "WARNING"
    solver: SolverSettings = SolverSettings()
    fitting: FitSettings = FitSettings()
    gut_blood: GutBloodSettings = GutBloodSettings()
    oral_pk: OralPKSettings = OralPKSettings()
    binding: BindingSettings = BindingSettings()
    enzyme: EnzymeSettings = EnzymeSettings()
    epidemic: EpidemicSettings = EpidemicSettings()

    def solver_options(self) -> dict:
        return self.solver.model_dump()

    def fit_options(self) -> dict:
        return self.fitting.model_dump()


def load_settings(path: Optional[str] = None) -> Settings:
    if path is None:
        return Settings()
    with open(path) as f:
        data = json.load(f)
    return Settings(**data)
