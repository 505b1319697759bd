"""
Bayesian counterpart of model2 (CPU sampling with PyMC).

    Mood ~ Normal(θ, σ_e)
    θ    = α + β_t·Time_scaled + β_d·Drug + β_td·Time_scaled·Drug
           + u0[subject] + u1[subject]·Time_scaled

Subject intercepts and slopes are non-centred and independent; the
frequentist fits remain the primary analysis.
"""
import logging
import time
from contextlib import contextmanager

import numpy as np
import pandas as pd
import pymc as pm

from src.data.ColumnSchema import _ColumnSchema

logger = logging.getLogger(__name__)

FIXED_TERMS = ["Time_scaled", "Drug", "Time_scaled:Drug"]


# ── Context manager for timing ─────────────────────────────────────────
@contextmanager
def _timed_section(label: str):
    t0 = time.time()
    yield
    logger.info("[%s] finished in %.1f s", label, time.time() - t0)


def design_arrays(df: pd.DataFrame) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Return (X, y, subject_idx, subject_labels, time_scaled) for the model."""
    cols = _ColumnSchema()
    t = df[cols.scaled_time()].to_numpy(dtype=float)
    d = df[cols.treatment()].to_numpy(dtype=float)
    X = np.column_stack([t, d, t * d])
    y = df[cols.target()].to_numpy(dtype=float)
    subject_idx, subject_labels = pd.factorize(df[cols.group()], sort=True)
    return X, y, subject_idx, np.asarray(subject_labels), t


def fit_bayesian_mood(
    df: pd.DataFrame,
    *,
    mu_mean: float  = 6.0,
    mu_sd:   float  = 10.0,
    sigma_prior: float = 2.0,
    draws: int      = 500,
    tune:  int      = 500,
    target_accept: float = 0.9,
    chains: int     = 2,
    random_seed: int | None = 42,
    verbose: bool   = False,
):
    """
    Hierarchical Bayesian model on a model-ready frame (CPU, no widgets).

    Returns ArviZ InferenceData with posterior, posterior_predictive and
    log_likelihood groups.
    """
    X, y, subj_idx, subj_labels, t = design_arrays(df)
    coords = {"subject": subj_labels, "term": FIXED_TERMS}
    if verbose:
        logger.info("Data dims: n_obs=%d n_subjects=%d n_fixed=%d",
                    len(y), len(subj_labels), X.shape[1])

    with pm.Model(coords=coords):
        alpha    = pm.Normal("alpha", mu_mean, mu_sd)
        beta     = pm.Normal("beta", 0, 5, dims="term")

        sigma_u0 = pm.HalfNormal("sigma_u0", sigma_prior)
        u0_raw   = pm.Normal("u0_raw", 0, 1, dims="subject")
        u0       = pm.Deterministic("u0", u0_raw * sigma_u0, dims="subject")

        sigma_u1 = pm.HalfNormal("sigma_u1", sigma_prior)
        u1_raw   = pm.Normal("u1_raw", 0, 1, dims="subject")
        u1       = pm.Deterministic("u1", u1_raw * sigma_u1, dims="subject")

        theta = (
            alpha
            + pm.math.dot(X, beta)
            + u0[subj_idx]
            + u1[subj_idx] * t
        )
        sigma_e = pm.HalfNormal("sigma_e", sigma_prior)
        pm.Normal("y_obs", theta, sigma_e, observed=y)

        # ── Sampling on CPU (plain text only) ────────────────────────────
        with _timed_section("compile+sample"):
            idata = pm.sample(
                draws=draws,
                tune=tune,
                chains=chains,
                target_accept=target_accept,
                random_seed=random_seed,
                progressbar=False,
                idata_kwargs={"log_likelihood": ["y_obs"]},
            )

        # ── Posterior predictive sampling ────────────────────────────────
        with _timed_section("posterior_predictive"):
            idata.extend(
                pm.sample_posterior_predictive(
                    idata, var_names=["y_obs"], random_seed=random_seed, progressbar=False
                )
            )

    return idata


# ───────────────────────────────────────────────────────────────────────
# Smoke test (only run when module executed directly)
# ───────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    from src.data.simulate import simulate_trial
    from src.features.preprocess import prepare_for_mixed
    from src.utils.bayesian_metrics import (compute_classical_metrics,
                                            compute_convergence_diagnostics)
    from src.utils.posterior import global_effects

    logging.basicConfig(level=logging.INFO)
    df_model, _ = prepare_for_mixed(simulate_trial())
    idata = fit_bayesian_mood(df_model, draws=200, tune=200, verbose=True)

    print("=== Classical Metrics ===")
    compute_classical_metrics(idata, df_model["Mood"].to_numpy())
    print("\n=== Convergence Diagnostics ===")
    compute_convergence_diagnostics(idata)
    print("\n=== Global effects ===")
    print(global_effects(idata))
