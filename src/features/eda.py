import pandas as pd  # type: ignore
import matplotlib.pyplot as plt  # type: ignore
import numpy as np  # type: ignore

from src.data.ColumnSchema import _ColumnSchema


def get_column_groups() -> dict:
    """
    Return a mapping of column-role → list of columns,
    based on the canonical schema in src.data.ColumnSchema.
    """
    return _ColumnSchema().as_dict()


def quick_pulse_check(df: pd.DataFrame) -> pd.DataFrame:
    """
    Print a quick summary table:
      - total rows
      - unique subjects and visits
      - subjects per arm
      - overall mean Mood
      - mean Mood by arm
    Returns a pd.DataFrame with those metrics.
    """
    cols = _ColumnSchema()
    group, time, drug, target = cols.group(), cols.time(), cols.treatment(), cols.target()

    per_subject_arm = df.groupby(group)[drug].first()
    mean_by_arm = df.groupby(drug)[target].mean()

    metrics = [
        "Total rows",
        "Unique subjects",
        "Visits per subject",
        "Subjects on drug",
        "Subjects on placebo",
        "Overall mean Mood",
    ]
    values = [
        len(df),
        df[group].nunique(),
        df[time].nunique(),
        int((per_subject_arm == 1).sum()),
        int((per_subject_arm == 0).sum()),
        df[target].mean(),
    ]

    for arm, label in ((0, "placebo"), (1, "drug")):
        metrics.append(f"Mean Mood @ {label}")
        values.append(mean_by_arm.get(arm, np.nan))

    table = pd.DataFrame({
        "Metric": metrics,
        "Value": values
    })

    print(table.to_string(index=False))
    return table


def arm_time_means(df: pd.DataFrame) -> pd.DataFrame:
    """Mean, SD and n of Mood for every (Drug, Time) cell."""
    cols = _ColumnSchema()
    return (
        df.groupby([cols.treatment(), cols.time()])[cols.target()]
        .agg(["mean", "std", "count"])
        .reset_index()
    )


def red_flag_drug_consistency(df: pd.DataFrame) -> pd.Series:
    """
    Identify subjects whose Drug value changes across their own visits.
    Returns a Series of distinct-value counts indexed by Subject.
    """
    cols = _ColumnSchema()
    levels = df.groupby(cols.group())[cols.treatment()].nunique()
    flagged = levels[levels > 1]
    print(f"> Subjects with more than one Drug value: {len(flagged)}")
    if len(flagged) > 0:
        print(f"  First few: {', '.join(map(str, flagged.index[:5]))}")
    return flagged


def plot_distributions(df: pd.DataFrame,
                       by: str = "Drug"):
    """
    Histogram of Mood faceted by `by`.
    Returns the Matplotlib figure so callers can save or show it.
    """
    target = _ColumnSchema().target()
    groups = sorted(df[by].unique())
    fig, axes = plt.subplots(len(groups), 1,
                             figsize=(6, 2.8 * len(groups)),
                             sharex=True, squeeze=False)
    for ax, grp in zip(axes[:, 0], groups):
        ax.hist(df[df[by] == grp][target], bins=30, alpha=0.75)
        ax.set_title(f"{by} = {grp} (n={len(df[df[by] == grp])})")
        ax.set_xlabel(target)
    fig.tight_layout()
    return fig


def plot_time_trends(df: pd.DataFrame,
                     sample: int = 30,
                     rng: np.random.Generator | None = None):
    """
    Plot Mood over visits for a random sample of subjects, with the
    per-arm mean trajectory drawn on top.
    """
    cols = _ColumnSchema()
    group, time, drug, target = cols.group(), cols.time(), cols.treatment(), cols.target()
    rng = rng or np.random.default_rng(0)

    subjects = df[group].unique()
    chosen = rng.choice(subjects,
                        min(sample, len(subjects)),
                        replace=False)
    colours = {0: "tab:blue", 1: "tab:orange"}

    fig, ax = plt.subplots(figsize=(8, 4))
    for s in chosen:
        rows = df[df[group] == s].sort_values(time)
        ax.plot(rows[time], rows[target], alpha=0.2,
                color=colours.get(int(rows[drug].iloc[0]), "gray"))

    means = arm_time_means(df)
    for arm, label in ((0, "placebo"), (1, "drug")):
        m = means[means[drug] == arm]
        if not m.empty:
            ax.plot(m[time], m["mean"], marker="o", linewidth=2.5,
                    color=colours[arm], label=f"{label} mean")
    ax.set_xlabel(time)
    ax.set_ylabel(target)
    ax.set_title("Mood over visits by arm")
    ax.legend()
    fig.tight_layout()
    return fig


if __name__ == "__main__":
    from src.data.simulate import simulate_trial

    df = simulate_trial()
    quick_pulse_check(df)
    red_flag_drug_consistency(df)
    print(arm_time_means(df))
    plot_time_trends(df).savefig("time_trends.png")
    print("Saved plot to time_trends.png")
