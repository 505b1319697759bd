"""
Frequentist mixed‑effects models using statsmodels MixedLM.

Three random-effects structures are fit against the same fixed part:

    model1: Mood ~ Time_scaled + Drug        + (1 | Subject)
    model2: Mood ~ Time_scaled * Drug        + (1 + Time_scaled | Subject)
    model3: Mood ~ Time_scaled * Drug        + (0 + Time_scaled | Subject)

We rely on columns already produced by prepare_for_mixed():
    • Time_scaled  – z-scored visit
    • Drug         – 0/1 arm indicator

Estimation is entirely statsmodels'; this module only wires formulas,
captures the library's warnings and flags boundary (singular) fits so the
caller sees them.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats

from src.data.ColumnSchema import _ColumnSchema
from src.utils.errors import EstimationError

logger = logging.getLogger(__name__)

INTERCEPT = "Intercept"
SINGULAR_TOL = 1e-4
# tried in order until one converges
DEFAULT_OPTIMIZERS = ("powell", "lbfgs")
# statsmodels messages that report an estimate on the variance boundary
BOUNDARY_WARNINGS = ("covariance is singular", "on the boundary")


# ───────────────────────────────────────────────────────────────────────
# Model structures
# ───────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ModelSpec:
    """Fixed-effects formula plus the per-subject random terms."""

    name: str
    formula: str
    re_terms: tuple[str, ...]
    description: str = ""

    @property
    def re_formula(self) -> str:
        slopes = [t for t in self.re_terms if t != INTERCEPT]
        if INTERCEPT in self.re_terms:
            return " + ".join(slopes) if slopes else "1"
        return "0 + " + " + ".join(slopes)

    @property
    def has_random_intercept(self) -> bool:
        return INTERCEPT in self.re_terms


MODEL_SPECS: dict[str, ModelSpec] = {
    "model1": ModelSpec(
        name="model1",
        formula="Mood ~ Time_scaled + Drug",
        re_terms=(INTERCEPT,),
        description="Random intercept per subject",
    ),
    "model2": ModelSpec(
        name="model2",
        formula="Mood ~ Time_scaled * Drug",
        re_terms=(INTERCEPT, "Time_scaled"),
        description="Correlated random intercept and Time_scaled slope per subject",
    ),
    "model3": ModelSpec(
        name="model3",
        formula="Mood ~ Time_scaled * Drug",
        re_terms=("Time_scaled",),
        description="Random Time_scaled slope per subject, no random intercept",
    ),
}


# ───────────────────────────────────────────────────────────────────────
# Fit results
# ───────────────────────────────────────────────────────────────────────
@dataclass
class FitDiagnostics:
    method: str
    converged: bool
    singular: bool
    warnings: list[str] = field(default_factory=list)


@dataclass(eq=False)
class DataSignature:
    """What a fit saw; two fits are comparable only if these match."""

    n_obs: int
    groups: np.ndarray
    response: np.ndarray

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "DataSignature":
        cols = _ColumnSchema()
        return cls(
            n_obs=len(df),
            groups=df[cols.group()].to_numpy(),
            response=df[cols.target()].to_numpy(dtype=float),
        )

    def matches(self, other: "DataSignature") -> bool:
        return (
            self.n_obs == other.n_obs
            and np.array_equal(self.groups, other.groups)
            and np.array_equal(self.response, other.response)
        )


@dataclass(eq=False)
class FittedModel:
    """A statsmodels MixedLMResults plus the spec and diagnostics behind it."""

    spec: ModelSpec
    result: object
    diagnostics: FitDiagnostics
    data_signature: DataSignature

    # -- basic quantities ------------------------------------------------
    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def reml(self) -> bool:
        return self.diagnostics.method == "REML"

    @property
    def llf(self) -> float:
        return float(self.result.llf)

    @property
    def nobs(self) -> int:
        return self.data_signature.n_obs

    @property
    def fixed_terms(self) -> list[str]:
        return list(self.result.fe_params.index)

    @property
    def n_params(self) -> int:
        """Fixed effects + free random-effects covariance entries + residual variance."""
        k_fe = len(self.result.fe_params)
        k_re = np.asarray(self.result.cov_re).shape[0]
        return int(k_fe + k_re * (k_re + 1) // 2 + 1)

    @property
    def aic(self) -> float:
        if self.reml:
            return np.nan
        return -2.0 * self.llf + 2.0 * self.n_params

    @property
    def bic(self) -> float:
        if self.reml:
            return np.nan
        return -2.0 * self.llf + np.log(self.nobs) * self.n_params

    @property
    def fittedvalues(self) -> np.ndarray:
        return np.asarray(self.result.fittedvalues, dtype=float)

    @property
    def resid(self) -> np.ndarray:
        return np.asarray(self.result.resid, dtype=float)

    # -- tables ----------------------------------------------------------
    def fixed_effects(self, alpha: float = 0.05) -> pd.DataFrame:
        """Estimate, SE, Wald z, p-value and CI for every fixed effect."""
        est = pd.Series(self.result.fe_params, dtype=float)
        se = pd.Series(np.asarray(self.result.bse_fe, dtype=float), index=est.index)
        z = est / se
        crit = stats.norm.ppf(1 - alpha / 2)
        return pd.DataFrame({
            "estimate": est,
            "std_err": se,
            "z": z,
            "p_value": 2 * stats.norm.sf(np.abs(z)),
            "ci_lower": est - crit * se,
            "ci_upper": est + crit * se,
        })

    def variance_components(self) -> pd.DataFrame:
        """Random-effect variances, their correlations and the residual variance."""
        cov = np.asarray(self.result.cov_re, dtype=float)
        terms = self.spec.re_terms
        rows = []
        for i, term in enumerate(terms):
            rows.append({"component": f"Subject {term}", "variance": cov[i, i],
                         "sd": np.sqrt(max(cov[i, i], 0.0)), "corr": np.nan})
        for i in range(len(terms)):
            for j in range(i):
                denom = np.sqrt(cov[i, i] * cov[j, j])
                corr = cov[i, j] / denom if denom > 0 else np.nan
                rows.append({"component": f"Subject {terms[j]} x {terms[i]}",
                             "variance": cov[i, j], "sd": np.nan, "corr": corr})
        scale = float(self.result.scale)
        rows.append({"component": "Residual", "variance": scale,
                     "sd": np.sqrt(scale), "corr": np.nan})
        return pd.DataFrame(rows)

    def random_effects(self) -> pd.DataFrame:
        """Predicted per-subject deviations (BLUPs), one column per random term."""
        re = pd.DataFrame.from_dict(
            {k: np.asarray(v, dtype=float) for k, v in self.result.random_effects.items()},
            orient="index",
        )
        re.columns = list(self.spec.re_terms)
        re.index.name = _ColumnSchema().group()
        return re.sort_index()

    # -- prediction --------------------------------------------------------
    def predict(self, df: pd.DataFrame, include_random: bool = True) -> np.ndarray:
        """
        Predict Mood for new rows. With ``include_random`` each row also gets
        its subject's deviation; unknown subjects fall back to the population
        curve.
        """
        pred = np.asarray(self.result.predict(exog=df), dtype=float)
        if not include_random:
            return pred

        group = _ColumnSchema().group()
        re = self.random_effects().reindex(df[group].to_numpy()).fillna(0.0)
        for term in self.spec.re_terms:
            design = 1.0 if term == INTERCEPT else df[term].to_numpy(dtype=float)
            pred = pred + re[term].to_numpy() * design
        return pred

    def summary(self):
        return self.result.summary()

    def __repr__(self) -> str:
        return (f"FittedModel({self.name}, method={self.diagnostics.method}, "
                f"llf={self.llf:.3f}, singular={self.diagnostics.singular})")


# ───────────────────────────────────────────────────────────────────────
# Fitting
# ───────────────────────────────────────────────────────────────────────
def is_singular(result, tol: float = SINGULAR_TOL) -> bool:
    """
    Boundary check on the relative random-effects covariance
    (cov_re / residual variance): singular when its Cholesky factor has a
    diagonal element below ``tol`` or the matrix is not positive definite.
    """
    cov = np.asarray(result.cov_re, dtype=float)
    if cov.size == 0:
        return False
    rel = cov / float(result.scale)
    try:
        chol = np.linalg.cholesky(rel)
    except np.linalg.LinAlgError:
        return True
    return bool(np.any(np.abs(np.diag(chol)) < tol))


def fit_mixed(df: pd.DataFrame,
              spec: ModelSpec | str,
              *,
              reml: bool = False,
              method=None,
              on_singular: str = "warn",
              singular_tol: float = SINGULAR_TOL) -> FittedModel:
    """
    Fit one model structure to a model-ready frame.

    Parameters
    ----------
    df : pd.DataFrame
        Output of ``prepare_for_mixed`` (needs Mood, Time_scaled, Drug, Subject).
    spec : ModelSpec or str
        A spec or a key of ``MODEL_SPECS``.
    reml : bool, default False
        ML by default so the fits can enter likelihood-ratio tests.
    method : str or list, optional
        Optimizer(s) passed through to ``MixedLM.fit``; ``None`` uses
        ``DEFAULT_OPTIMIZERS``.
    on_singular : {"warn", "raise"}
        What to do with a boundary fit.
    singular_tol : float
        Threshold for ``is_singular``. A fit is also singular when statsmodels
        warns that the covariance is singular or the MLE is on the boundary.

    Raises
    ------
    EstimationError
        Optimizer did not converge, the library failed numerically, or the
        fit is singular and ``on_singular="raise"``.
    """
    if isinstance(spec, str):
        spec = MODEL_SPECS[spec]
    if on_singular not in ("warn", "raise"):
        raise ValueError(f"on_singular must be 'warn' or 'raise', got {on_singular!r}")

    cols = _ColumnSchema()
    model = smf.mixedlm(
        formula=spec.formula,
        data=df,
        groups=df[cols.group()],
        re_formula=spec.re_formula,
    )

    logger.info("Fitting %s (%s) by %s", spec.name, spec.description, "REML" if reml else "ML")
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            result = model.fit(
                reml=reml,
                method=list(DEFAULT_OPTIMIZERS) if method is None else method,
            )
        except (np.linalg.LinAlgError, ValueError) as exc:
            raise EstimationError(f"{spec.name}: estimation failed ({exc})") from exc
    messages = list(dict.fromkeys(
        str(w.message) for w in caught
        if not issubclass(w.category, (DeprecationWarning, PendingDeprecationWarning, FutureWarning))
    ))

    converged = bool(getattr(result, "converged", False))
    if not converged:
        detail = "; ".join(messages) or "optimizer reported non-convergence"
        raise EstimationError(f"{spec.name}: model did not converge ({detail})")

    singular = is_singular(result, tol=singular_tol) or any(
        pattern in msg.lower() for msg in messages for pattern in BOUNDARY_WARNINGS
    )
    diagnostics = FitDiagnostics(
        method="REML" if reml else "ML",
        converged=converged,
        singular=singular,
        warnings=messages,
    )
    for msg in messages:
        logger.warning("%s: %s", spec.name, msg)
    if singular:
        if on_singular == "raise":
            raise EstimationError(
                f"{spec.name}: singular fit (a random-effect variance is at its boundary)"
            )
        logger.warning("%s: singular fit, random-effects covariance is at its boundary",
                       spec.name)

    fitted = FittedModel(
        spec=spec,
        result=result,
        diagnostics=diagnostics,
        data_signature=DataSignature.from_frame(df),
    )
    logger.info("%s: llf=%.3f, %d parameters", spec.name, fitted.llf, fitted.n_params)
    return fitted


def fit_all_models(df: pd.DataFrame,
                   specs: dict[str, ModelSpec] | None = None,
                   **fit_kw) -> dict[str, FittedModel]:
    """Fit every spec in order; the first failure propagates."""
    specs = MODEL_SPECS if specs is None else specs
    return {name: fit_mixed(df, spec, **fit_kw) for name, spec in specs.items()}


# ───────────────────────────────────────────────────────────────────────
# Narrative
# ───────────────────────────────────────────────────────────────────────
def _fmt_p(p: float) -> str:
    return "p < 0.001" if p < 0.001 else f"p = {p:.3f}"


def interpret_fixed_effects(fm: FittedModel, alpha: float = 0.05) -> list[str]:
    """Plain-language reading of every fixed effect of a fitted model."""
    table = fm.fixed_effects(alpha=alpha)
    cols = _ColumnSchema()
    time_col, drug_col = cols.scaled_time(), cols.treatment()
    lines = []

    for term, row in table.iterrows():
        est, p = row["estimate"], row["p_value"]
        verdict = "significant" if p < alpha else "not significant"
        stat = f"(SE {row['std_err']:.3f}, {_fmt_p(p)}; {verdict} at α={alpha})"

        if term == INTERCEPT:
            text = f"Expected Mood for a placebo subject at the average visit is {est:.3f} {stat}."
        elif term == time_col:
            text = (f"Each 1-SD step in time changes Mood by {est:+.3f} "
                    f"for placebo subjects {stat}.")
        elif term == drug_col:
            text = (f"At the average visit, subjects on drug differ from placebo by "
                    f"{est:+.3f} Mood units {stat}.")
        elif term in (f"{time_col}:{drug_col}", f"{drug_col}:{time_col}"):
            direction = "steeper" if est > 0 else "shallower"
            text = (f"The Mood trajectory over time is {abs(est):.3f} per SD {direction} "
                    f"on drug than on placebo {stat}.")
        else:
            text = f"{term}: estimate {est:+.3f} {stat}."
        lines.append(text)
    return lines


# ───────────────────────────────────────────────────────────────────────
# Smoke test (only run when module executed directly)
# ───────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    from src.data.simulate import simulate_trial
    from src.features.preprocess import prepare_for_mixed

    logging.basicConfig(level=logging.INFO)
    df_model, _ = prepare_for_mixed(simulate_trial())
    models = fit_all_models(df_model)
    for name, fm in models.items():
        print(f"\n=== {name}: {fm.spec.description} ===")
        print(fm.summary())
        print(fm.variance_components().to_string(index=False))
    print("\n".join(interpret_fixed_effects(models["model2"])))
