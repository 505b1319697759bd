"""
Likelihood-ratio comparison of nested mixed-effects fits.

Usage
-----
>>> from src.models.compare import compare_models
>>> lrt = compare_models(models["model1"], models["model2"])
>>> lrt.p_value
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict

import numpy as np
import pandas as pd
from scipy import stats

from src.models.mixed import FittedModel
from src.utils.errors import IncompatibleModelsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LRTResult:
    small: str
    large: str
    statistic: float
    df_diff: int
    p_value: float
    p_value_boundary: float     # NaN unless only variance components differ
    aic_small: float
    aic_large: float
    bic_small: float
    bic_large: float

    def as_dict(self) -> dict:
        return asdict(self)

    def __str__(self) -> str:
        text = (f"{self.small} vs {self.large}: LR = {self.statistic:.3f}, "
                f"df = {self.df_diff}, p = {self.p_value:.4g} | "
                f"AIC {self.aic_small:.1f} / {self.aic_large:.1f}, "
                f"BIC {self.bic_small:.1f} / {self.bic_large:.1f}")
        if np.isfinite(self.p_value_boundary):
            text += f" | boundary-corrected p = {self.p_value_boundary:.4g}"
        return text


def _check_comparable(small: FittedModel, large: FittedModel) -> None:
    for fm in (small, large):
        if fm.reml:
            raise IncompatibleModelsError(
                f"{fm.name} was fit by REML; refit with reml=False before comparing"
            )
    if not small.data_signature.matches(large.data_signature):
        raise IncompatibleModelsError(
            f"{small.name} and {large.name} were not fit on identical data"
        )
    missing_fe = set(small.fixed_terms) - set(large.fixed_terms)
    missing_re = set(small.spec.re_terms) - set(large.spec.re_terms)
    if missing_fe or missing_re:
        raise IncompatibleModelsError(
            f"{small.name} is not nested in {large.name} "
            f"(fixed terms not in larger model: {sorted(missing_fe)}, "
            f"random terms not in larger model: {sorted(missing_re)})"
        )


def compare_models(model_a: FittedModel, model_b: FittedModel) -> LRTResult:
    """
    Likelihood-ratio test of two nested ML fits on the same data.

    The model with fewer parameters is treated as the null model whatever the
    argument order. ``p_value`` is the χ² survival at ``df_diff`` (1.0 when
    the models have the same number of parameters). When the fixed effects
    are identical and only random effects are added, ``p_value_boundary``
    is the 50:50 χ²(df−1)/χ²(df) mixture that accounts for variances
    tested at zero.

    Raises
    ------
    IncompatibleModelsError
        REML fits, different data, or non-nested models.
    """
    small, large = sorted((model_a, model_b), key=lambda fm: fm.n_params)
    _check_comparable(small, large)

    df_diff = large.n_params - small.n_params
    statistic = max(0.0, 2.0 * (large.llf - small.llf))

    if df_diff == 0:
        p_value = 1.0
    else:
        p_value = float(stats.chi2.sf(statistic, df_diff))

    p_boundary = np.nan
    if df_diff > 0 and set(small.fixed_terms) == set(large.fixed_terms):
        lower = 1.0 if statistic <= 0 else 0.0
        if df_diff > 1:
            lower = float(stats.chi2.sf(statistic, df_diff - 1))
        p_boundary = 0.5 * lower + 0.5 * p_value

    result = LRTResult(
        small=small.name,
        large=large.name,
        statistic=float(statistic),
        df_diff=int(df_diff),
        p_value=p_value,
        p_value_boundary=float(p_boundary),
        aic_small=small.aic,
        aic_large=large.aic,
        bic_small=small.bic,
        bic_large=large.bic,
    )
    logger.info("%s", result)
    return result


def information_criteria(models: dict[str, FittedModel]) -> pd.DataFrame:
    """llf, parameter count, AIC and BIC per model, best AIC first."""
    rows = [
        {
            "model": name,
            "llf": fm.llf,
            "n_params": fm.n_params,
            "aic": fm.aic,
            "bic": fm.bic,
            "singular": fm.diagnostics.singular,
        }
        for name, fm in models.items()
    ]
    return pd.DataFrame(rows).sort_values("aic").reset_index(drop=True)
