# tests/test_simulation_study.py
import pytest

from src.data.simulate import TrialDesign
from src.utils.simulation_study import run_replicates, summarise_replicates


@pytest.fixture(scope="module")
def small_design():
    return TrialDesign(n_subjects=30, n_timepoints=4, subject_intercept_sd=0.8)


@pytest.fixture(scope="module")
def reps(small_design):
    return run_replicates(small_design, "model1", n_reps=4, seed=3, progress=False)


def test_one_row_per_replicate_and_term(reps):
    assert len(reps) == 4 * 3
    assert set(reps["term"]) == {"Intercept", "Time_scaled", "Drug"}
    assert sorted(reps["replicate"].unique()) == [0, 1, 2, 3]


def test_replicates_reproducible(small_design, reps):
    again = run_replicates(small_design, "model1", n_reps=4, seed=3, progress=False)
    assert again["estimate"].tolist() == pytest.approx(reps["estimate"].tolist())


def test_replicates_differ_from_each_other(reps):
    drug = reps.loc[reps["term"] == "Drug", "estimate"]
    assert drug.nunique() == 4


def test_summary_truth_on_scaled_time(small_design, reps):
    summary = summarise_replicates(reps, small_design).set_index("term")
    time_sd = reps["time_sd"].mean()
    assert summary.loc["Time_scaled", "truth"] == pytest.approx(small_design.time_coef * time_sd)
    # model1 has no interaction, so its Drug estimate targets the effect at the mean visit
    assert summary.loc["Drug", "truth"] == pytest.approx(
        small_design.drug_coef + small_design.interaction_coef * 2.5
    )
    assert set(summary.columns) >= {"bias", "empirical_sd", "rejection_rate"}


def test_bad_n_reps(small_design):
    with pytest.raises(ValueError):
        run_replicates(small_design, "model1", n_reps=0, progress=False)
