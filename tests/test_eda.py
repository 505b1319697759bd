# tests/test_eda.py
import matplotlib.figure
import numpy as np

from src.data.ColumnSchema import _ColumnSchema
from src.features.eda import (
    arm_time_means,
    get_column_groups,
    plot_distributions,
    plot_time_trends,
    quick_pulse_check,
    red_flag_drug_consistency,
)


def test_schema_columns():
    cols = _ColumnSchema()
    assert cols.raw() == ["Subject", "Time", "Drug", "Mood"]
    assert cols.model_features() == ["Time_scaled", "Drug"]
    assert get_column_groups()["target"] == ["Mood"]


def test_pulse_check_counts(trial_df, design, capsys):
    table = quick_pulse_check(trial_df).set_index("Metric")["Value"]
    assert table["Total rows"] == design.n_rows
    assert table["Unique subjects"] == design.n_subjects
    assert table["Visits per subject"] == design.n_timepoints
    assert table["Subjects on drug"] + table["Subjects on placebo"] == design.n_subjects
    assert np.isclose(table["Overall mean Mood"], trial_df["Mood"].mean())
    assert "Total rows" in capsys.readouterr().out


def test_arm_time_means_cells(trial_df, design):
    means = arm_time_means(trial_df)
    n_arms = trial_df["Drug"].nunique()
    assert len(means) == n_arms * design.n_timepoints
    assert means["count"].sum() == len(trial_df)


def test_drug_consistency_flags_switchers(trial_df):
    assert red_flag_drug_consistency(trial_df).empty
    bad = trial_df.copy()
    first = bad.index[bad["Subject"] == 2][0]
    bad.loc[first, "Drug"] = 1 - bad.loc[first, "Drug"]
    assert red_flag_drug_consistency(bad).index.tolist() == [2]


def test_plots_return_figures(trial_df):
    assert isinstance(plot_distributions(trial_df), matplotlib.figure.Figure)
    assert isinstance(plot_time_trends(trial_df, sample=5), matplotlib.figure.Figure)
