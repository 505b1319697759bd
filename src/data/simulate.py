"""
Synthetic longitudinal trial data.

Each subject is randomised once to drug or placebo and measured at every
visit ``1..n_timepoints``:

    Mood = intercept + time_coef·Time + drug_coef·Drug
         + interaction_coef·Time·Drug
         (+ u0_i + u1_i·Time)              # optional subject deviations
         + ε,        ε ~ N(0, noise_sd²)

The random source is always an explicit ``numpy.random.Generator`` so that
runs in parallel test workers never share state.

Usage
-----
>>> from src.data.simulate import TrialDesign, simulate_trial, make_rng
>>> df = simulate_trial(TrialDesign(), make_rng(42))
>>> df.shape
(900, 4)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict

import numpy as np
import pandas as pd

from src.data.ColumnSchema import _ColumnSchema
from src.utils.errors import DataGenerationError

logger = logging.getLogger(__name__)

DEFAULT_SEED = 42
ALLOCATIONS = ("bernoulli", "balanced")


@dataclass(frozen=True)
class TrialDesign:
    """Parameters of the generative model (defaults reproduce the study)."""

    n_subjects: int = 150
    n_timepoints: int = 6
    intercept: float = 6.0
    time_coef: float = 0.3
    drug_coef: float = 2.5
    interaction_coef: float = 0.5
    noise_sd: float = 1.0
    drug_prob: float = 0.5
    allocation: str = "bernoulli"
    subject_intercept_sd: float = 0.0
    subject_slope_sd: float = 0.0

    @property
    def n_rows(self) -> int:
        return self.n_subjects * self.n_timepoints

    def validate(self) -> "TrialDesign":
        """Raise DataGenerationError for a degenerate design, else return self."""
        for name in ("n_subjects", "n_timepoints"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise DataGenerationError(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise DataGenerationError(f"{name} must be positive, got {value}")

        coefs = ("intercept", "time_coef", "drug_coef", "interaction_coef")
        for name in coefs:
            if not np.isfinite(getattr(self, name)):
                raise DataGenerationError(f"{name} must be finite")

        for name in ("noise_sd", "subject_intercept_sd", "subject_slope_sd"):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise DataGenerationError(f"{name} must be a finite value >= 0, got {value}")

        if not 0.0 <= self.drug_prob <= 1.0:
            raise DataGenerationError(f"drug_prob must lie in [0, 1], got {self.drug_prob}")
        if self.allocation not in ALLOCATIONS:
            raise DataGenerationError(
                f"Unknown allocation '{self.allocation}' (expected one of {ALLOCATIONS})"
            )
        return self

    def as_dict(self) -> dict:
        return asdict(self)


def make_rng(seed: int | np.random.Generator | None = DEFAULT_SEED) -> np.random.Generator:
    """Return a Generator; an existing Generator is passed through untouched."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


# ───────────────────────────────────────────────────────────────────────
# Generative mean
# ───────────────────────────────────────────────────────────────────────
def expected_mood(design: TrialDesign, time, drug) -> np.ndarray:
    """Generative mean of Mood at the given visit(s) and treatment status."""
    time = np.asarray(time, dtype=float)
    drug = np.asarray(drug, dtype=float)
    return (
        design.intercept
        + design.time_coef * time
        + design.drug_coef * drug
        + design.interaction_coef * time * drug
    )


def population_mean(design: TrialDesign) -> float:
    """
    Theoretical mean of Mood over the design: visits 1..T equally weighted,
    Drug ~ Bernoulli(drug_prob). Subject deviations and noise have mean zero.
    """
    design.validate()
    mean_time = (design.n_timepoints + 1) / 2.0
    p = design.drug_prob
    return float(
        design.intercept
        + design.time_coef * mean_time
        + design.drug_coef * p
        + design.interaction_coef * mean_time * p
    )


def true_effects(design: TrialDesign) -> dict[str, float]:
    """Generative coefficients keyed like the raw-Time regression terms."""
    return {
        "Intercept": design.intercept,
        "Time": design.time_coef,
        "Drug": design.drug_coef,
        "Time:Drug": design.interaction_coef,
    }


# ───────────────────────────────────────────────────────────────────────
# Simulator
# ───────────────────────────────────────────────────────────────────────
def _assign_drug(design: TrialDesign, rng: np.random.Generator) -> np.ndarray:
    """One treatment indicator per subject."""
    if design.allocation == "balanced":
        n_treated = int(round(design.n_subjects * design.drug_prob))
        arms = np.zeros(design.n_subjects, dtype=int)
        arms[:n_treated] = 1
        return rng.permutation(arms)
    return rng.binomial(1, design.drug_prob, size=design.n_subjects).astype(int)


def simulate_trial(
    design: TrialDesign | None = None,
    rng: np.random.Generator | int | None = None,
) -> pd.DataFrame:
    """
    Simulate one trial.

    Parameters
    ----------
    design : TrialDesign, optional
        Generative parameters; defaults to ``TrialDesign()``.
    rng : numpy.random.Generator or int, optional
        Random source or a seed for one; ``None`` uses ``DEFAULT_SEED``.

    Returns
    -------
    pd.DataFrame
        Columns Subject, Time, Drug, Mood; ``n_subjects × n_timepoints`` rows
        in subject-major, time-minor order.
    """
    design = (design or TrialDesign()).validate()
    rng = make_rng(DEFAULT_SEED if rng is None else rng)
    cols = _ColumnSchema()

    n, t = design.n_subjects, design.n_timepoints
    subject = np.repeat(np.arange(1, n + 1), t)
    time = np.tile(np.arange(1, t + 1), n)

    # 1) treatment, once per subject
    drug_per_subject = _assign_drug(design, rng)
    drug = np.repeat(drug_per_subject, t)

    # 2) subject deviations (no draws consumed when switched off)
    u0 = np.zeros(n)
    u1 = np.zeros(n)
    if design.subject_intercept_sd > 0:
        u0 = rng.normal(0.0, design.subject_intercept_sd, size=n)
    if design.subject_slope_sd > 0:
        u1 = rng.normal(0.0, design.subject_slope_sd, size=n)

    # 3) residual noise, one draw per row
    noise = rng.normal(0.0, design.noise_sd, size=n * t)

    mood = (
        expected_mood(design, time, drug)
        + np.repeat(u0, t)
        + np.repeat(u1, t) * time
        + noise
    )

    df = pd.DataFrame({
        cols.group(): subject,
        cols.time(): time,
        cols.treatment(): drug,
        cols.target(): mood,
    })
    logger.info(
        "Simulated %d subjects × %d visits (%d on drug)",
        n, t, int(drug_per_subject.sum()),
    )
    return df


# ───────────────────────────────────────────────────────────────────────
# Smoke test (only run when module executed directly)
# ───────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    design = TrialDesign()
    df = simulate_trial(design, make_rng(DEFAULT_SEED))
    print(df.head(12))
    print("Shape:", df.shape)
    print(f"Sample mean Mood: {df['Mood'].mean():.3f}  "
          f"(population mean {population_mean(design):.3f})")
