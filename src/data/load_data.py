import pandas as pd
import numpy as np
from pathlib import Path

from src.data.ColumnSchema import _ColumnSchema
from src.utils.errors import DataGenerationError


def save_data(df: pd.DataFrame, path='data/simulated/mood_trial.csv') -> Path:
    """
    Write a trial dataset to CSV (parent folders are created).

    Returns:
        Path: location written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    print(f"✔︎ saved dataset → {path}")
    return path


def load_data(path='data/simulated/mood_trial.csv'):
    """
    Load a trial dataset previously written by save_data.

    Returns:
        pd.DataFrame: raw trial data
    """

    df = pd.read_csv(path)
    return df



# ──  utility ─────────────────────────────────────────────────────────
def clean_raw(df: pd.DataFrame,
              debug: bool = False) -> pd.DataFrame:
    """
    Central place to check that a frame still has the trial layout:
      1. Required columns present, no missing values.
      2. One Drug value per Subject.
      3. Every Subject seen once at every visit.

    Returns a *fresh copy* (never mutates in‑place) with integer id columns.
    """
    cols = _ColumnSchema()
    group, time, drug = cols.group(), cols.time(), cols.treatment()

    missing_cols = [c for c in cols.raw() if c not in df.columns]
    if missing_cols:
        raise DataGenerationError(f"Dataset is missing columns: {missing_cols}")
    if df.empty:
        raise DataGenerationError("Dataset has no rows")

    nulls = df[cols.raw()].isna().sum()
    non_zero = nulls[nulls > 0]
    if not non_zero.empty:
        raise DataGenerationError(
            "Missing values in: " + ", ".join(f"{c} ({n})" for c, n in non_zero.items())
        )

    out = df.copy()
    out[[group, time, drug]] = out[[group, time, drug]].astype(int)

    drug_levels = out.groupby(group)[drug].nunique()
    mixed = drug_levels[drug_levels > 1]
    if not mixed.empty:
        raise DataGenerationError(
            f"{len(mixed)} subject(s) switch Drug across visits, e.g. {list(mixed.index[:5])}"
        )

    visits = np.sort(out[time].unique())
    per_subject = out.groupby(group)[time].agg(["size", "nunique"])
    incomplete = per_subject[
        (per_subject["size"] != len(visits)) | (per_subject["nunique"] != len(visits))
    ]
    if not incomplete.empty:
        raise DataGenerationError(
            f"{len(incomplete)} subject(s) lack a complete, unique set of visits"
        )

    if debug:
        print(f"✅  Trial layout OK: {out[group].nunique()} subjects × {len(visits)} visits "
              f"(n={len(out):,}).")
    return out.sort_values([group, time]).reset_index(drop=True)


def load_and_clean_data(path='data/simulated/mood_trial.csv'
                        ,debug: bool = False):
    df = load_data(path)
    df = clean_raw(df, debug=debug)
    return df


if __name__ == "__main__":
    from src.data.simulate import simulate_trial

    path = save_data(simulate_trial())
    df = load_and_clean_data(path, debug = True)
    print(df.head())
    print(df.columns)
