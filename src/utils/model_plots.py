"""
Diagnostic figures for fitted mixed models.

Every function returns a Matplotlib figure so callers can save or show it;
``render_all`` writes the full set for one model.
"""
from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy import stats

from src.data.ColumnSchema import _ColumnSchema
from src.models.mixed import FittedModel
from src.utils.errors import PlottingError

ARM_COLOURS = {0: "tab:blue", 1: "tab:orange"}
ARM_LABELS = {0: "placebo", 1: "drug"}


def prediction_grid(df: pd.DataFrame, n_points: int = 50) -> pd.DataFrame:
    """
    One row per (Subject, grid point) over an evenly spaced Time_scaled
    range, holding each subject's observed Drug status fixed.
    """
    cols = _ColumnSchema()
    group, drug, scaled = cols.group(), cols.treatment(), cols.scaled_time()

    if isinstance(n_points, bool) or not isinstance(n_points, (int, np.integer)) or n_points < 2:
        raise PlottingError(f"n_points must be an integer >= 2, got {n_points!r}")
    if df.empty:
        raise PlottingError("Cannot build a prediction grid from an empty frame")
    missing = [c for c in (group, drug, scaled) if c not in df.columns]
    if missing:
        raise PlottingError(f"Prediction grid needs columns {missing}")

    t = df[scaled].to_numpy(dtype=float)
    if not np.all(np.isfinite(t)):
        raise PlottingError(f"{scaled} contains NaN or Inf")
    lo, hi = float(t.min()), float(t.max())
    if lo == hi:
        raise PlottingError(f"{scaled} has no range to draw over")

    arms = df.groupby(group)[drug].first()
    grid = np.linspace(lo, hi, int(n_points))
    return pd.DataFrame({
        group: np.repeat(arms.index.to_numpy(), len(grid)),
        drug: np.repeat(arms.to_numpy(), len(grid)),
        scaled: np.tile(grid, len(arms)),
    })


def _check_rows(fm: FittedModel, df: pd.DataFrame) -> None:
    if len(df) != fm.nobs:
        raise PlottingError(
            f"{fm.name} was fit on {fm.nobs} rows but {len(df)} rows were given"
        )


def plot_subject_trajectories(fm: FittedModel,
                              df: pd.DataFrame,
                              n_points: int = 50,
                              subjects=None):
    """Predicted per-subject curves (fixed + random part), coloured by arm."""
    cols = _ColumnSchema()
    group, drug, scaled, target = cols.group(), cols.treatment(), cols.scaled_time(), cols.target()

    grid = prediction_grid(df, n_points=n_points)
    if subjects is not None:
        grid = grid[grid[group].isin(list(subjects))]
        if grid.empty:
            raise PlottingError("None of the requested subjects are in the data")
    grid = grid.assign(pred=fm.predict(grid, include_random=True))

    fig, ax = plt.subplots(figsize=(8, 5))
    for subj, rows in grid.groupby(group):
        arm = int(rows[drug].iloc[0])
        ax.plot(rows[scaled], rows["pred"], color=ARM_COLOURS.get(arm, "gray"),
                alpha=0.35, linewidth=1)

    pop = prediction_grid(df, n_points=n_points).drop_duplicates([drug, scaled])
    pop = pop.assign(pred=fm.predict(pop, include_random=False))
    for arm, rows in pop.groupby(drug):
        ax.plot(rows[scaled], rows["pred"], color=ARM_COLOURS.get(int(arm), "gray"),
                linewidth=3, label=f"{ARM_LABELS.get(int(arm), arm)} (population)")

    ax.set_xlabel(scaled)
    ax.set_ylabel(f"Predicted {target}")
    ax.set_title(f"{fm.name}: subject trajectories")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_observed_vs_predicted(fm: FittedModel, df: pd.DataFrame):
    """Observed Mood against conditional fitted values, with the identity line."""
    _check_rows(fm, df)
    cols = _ColumnSchema()
    observed = df[cols.target()].to_numpy(dtype=float)
    fitted = fm.fittedvalues
    arms = df[cols.treatment()].to_numpy()

    fig, ax = plt.subplots(figsize=(5.5, 5.5))
    for arm in np.unique(arms):
        mask = arms == arm
        ax.scatter(fitted[mask], observed[mask], s=8, alpha=0.5,
                   color=ARM_COLOURS.get(int(arm), "gray"), label=ARM_LABELS.get(int(arm), arm))
    lims = [min(fitted.min(), observed.min()), max(fitted.max(), observed.max())]
    ax.plot(lims, lims, "k--", linewidth=1, label="y = x")
    ax.set_xlabel(f"Predicted {cols.target()}")
    ax.set_ylabel(f"Observed {cols.target()}")
    ax.set_title(f"{fm.name}: observed vs predicted")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_residuals(fm: FittedModel, kind: str = "fitted"):
    """Residuals against fitted values (or row index) plus a normal Q-Q plot."""
    if kind not in ("fitted", "index"):
        raise PlottingError(f"kind must be 'fitted' or 'index', got {kind!r}")
    resid = fm.resid
    x = fm.fittedvalues if kind == "fitted" else np.arange(len(resid))

    fig, axes = plt.subplots(1, 2, figsize=(11, 4))
    axes[0].scatter(x, resid, s=8, alpha=0.5)
    axes[0].axhline(0, color="red", linestyle="--", alpha=0.7)
    axes[0].set_xlabel("Fitted values" if kind == "fitted" else "Observation index")
    axes[0].set_ylabel("Residual")
    axes[0].set_title(f"{fm.name}: residuals vs {kind}")

    stats.probplot(resid, dist="norm", plot=axes[1])
    axes[1].set_title(f"{fm.name}: residual Q-Q")
    fig.tight_layout()
    return fig


def plot_random_effects(fm: FittedModel):
    """Caterpillar plot of the per-subject deviations for every random term."""
    re = fm.random_effects()
    if re.empty:
        raise PlottingError(f"{fm.name} has no random effects to plot")

    fig, axes = plt.subplots(1, re.shape[1], figsize=(5 * re.shape[1], 6), squeeze=False)
    for ax, term in zip(axes[0], re.columns):
        ordered = re[term].sort_values()
        ax.scatter(ordered.to_numpy(), np.arange(len(ordered)), s=10)
        ax.axvline(0, color="gray", linestyle="--", linewidth=1)
        ax.set_yticks([])
        ax.set_xlabel("Deviation")
        ax.set_ylabel("Subjects (sorted)")
        ax.set_title(f"{fm.name}: Subject {term}")
    fig.tight_layout()
    return fig


def save_figure(fig, path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=120)
    plt.close(fig)
    return path


def render_all(fm: FittedModel, df: pd.DataFrame, out_dir, prefix: str | None = None) -> list[Path]:
    """Write the four diagnostic figures for one model; returns the paths."""
    out_dir = Path(out_dir)
    prefix = prefix or fm.name
    figures = {
        "trajectories": plot_subject_trajectories(fm, df),
        "observed_vs_predicted": plot_observed_vs_predicted(fm, df),
        "residuals": plot_residuals(fm),
        "random_effects": plot_random_effects(fm),
    }
    return [save_figure(fig, out_dir / f"{prefix}_{name}.png") for name, fig in figures.items()]
