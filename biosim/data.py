"""Enzyme assay tables: built-in example measurements and CSV loaders.

Calibration table columns: nadh (mM), absorbance.
Velocity assay columns: substrate (mM), abs_t1, abs_t2 (absorbance read at
two time points of the reaction).
"""
from typing import List

import pandas as pd

CALIBRATION_COLUMNS = ["nadh", "absorbance"]
VELOCITY_COLUMNS = ["substrate", "abs_t1", "abs_t2"]

# Michaelis-Menten starting values for the built-in velocity assay
EXAMPLE_START_PARAMS = {"Vmax": 0.008, "Km": 0.5}


def example_calibration() -> pd.DataFrame:
    """NADH standard curve read at 340 nm."""
    return pd.DataFrame(
        {
            "nadh": [0.0, 0.075, 0.150, 0.225, 0.300, 0.375],
            "absorbance": [0.0, 0.5065, 1.1743, 1.2, 1.48, 1.7],
        }
    )


def example_velocity_assay() -> pd.DataFrame:
    """Lactate dehydrogenase with varying pyruvate, absorbance at 10 s and 20 s."""
    return pd.DataFrame(
        {
            "substrate": [0.15, 0.3, 0.6, 1.2, 1.8],
            "abs_t1": [1.129, 0.991, 0.972, 0.746, 0.879],
            "abs_t2": [1.087, 0.915, 0.872, 0.628, 0.760],
        }
    )


def _load_table(path: str, expected: List[str]) -> pd.DataFrame:
    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    # Ensure expected columns exist
    missing = [c for c in expected if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns in {path}: {missing}")
    df = df[expected].astype(float)
    if df.isna().any().any():
        raise ValueError(f"Empty cells in {path}")
    return df.reset_index(drop=True)


def load_calibration_csv(path: str) -> pd.DataFrame:
    return _load_table(path, CALIBRATION_COLUMNS)


def load_velocity_csv(path: str) -> pd.DataFrame:
    return _load_table(path, VELOCITY_COLUMNS)
