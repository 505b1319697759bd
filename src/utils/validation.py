"""
Grouped K‑fold validator for the mixed models.

• Folds are split by Subject, so no subject contributes rows to both the
  training and the held-out side.
• Held-out subjects are unseen by the fit, so their predictions are the
  population (fixed-effects) curve.
"""
from __future__ import annotations
import numpy as np
import pandas as pd
from sklearn.model_selection import GroupKFold
from typing import List

from src.data.ColumnSchema import _ColumnSchema
from src.models.mixed import ModelSpec, fit_mixed


def rmse(a: np.ndarray, b: np.ndarray) -> float:
    a, b = np.asarray(a, dtype=float), np.asarray(b, dtype=float)
    return float(np.sqrt(np.mean((a - b) ** 2)))


def group_folds(df: pd.DataFrame, k: int = 5):
    """Yield (train_idx, test_idx) positional index pairs split by Subject."""
    groups = df[_ColumnSchema().group()].to_numpy()
    n_groups = len(np.unique(groups))
    if k < 2 or k > n_groups:
        raise ValueError(f"k must lie in [2, {n_groups}] for {n_groups} subjects, got {k}")
    yield from GroupKFold(n_splits=k).split(df, groups=groups)


def run_group_kfold_cv(
    df: pd.DataFrame,
    spec: ModelSpec | str,
    k: int = 5,
    **fit_kw
) -> List[float]:
    """
    Subject-grouped K-fold CV:
      fit_mixed(train, spec, **fit_kw) → population prediction on test.
    Returns a list of held-out RMSE scores, one per fold.
    """
    target = _ColumnSchema().target()
    rmses: List[float] = []
    for train_idx, test_idx in group_folds(df, k):
        train, test = df.iloc[train_idx], df.iloc[test_idx]
        fm = fit_mixed(train, spec, **fit_kw)
        pred = fm.predict(test, include_random=False)
        rmses.append(rmse(pred, test[target].to_numpy()))
    return rmses
