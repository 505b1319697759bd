# tests/test_simulate.py
import numpy as np
import pandas as pd
import pytest

from src.data.simulate import (
    TrialDesign,
    expected_mood,
    make_rng,
    population_mean,
    simulate_trial,
    true_effects,
)
from src.utils.errors import DataGenerationError


def test_shape_and_columns():
    design = TrialDesign(n_subjects=12, n_timepoints=4)
    df = simulate_trial(design, make_rng(1))
    assert list(df.columns) == ["Subject", "Time", "Drug", "Mood"]
    assert len(df) == design.n_rows == 48


def test_every_subject_sees_every_visit_once():
    design = TrialDesign(n_subjects=20, n_timepoints=6)
    df = simulate_trial(design, make_rng(3))
    for _, rows in df.groupby("Subject"):
        assert sorted(rows["Time"].tolist()) == list(range(1, 7))


def test_drug_constant_within_subject():
    df = simulate_trial(TrialDesign(n_subjects=30), make_rng(5))
    assert (df.groupby("Subject")["Drug"].nunique() == 1).all()
    assert set(df["Drug"].unique()) <= {0, 1}


def test_same_seed_same_frame():
    a = simulate_trial(TrialDesign(), make_rng(42))
    b = simulate_trial(TrialDesign(), make_rng(42))
    pd.testing.assert_frame_equal(a, b)


def test_different_seed_different_mood():
    a = simulate_trial(TrialDesign(), make_rng(1))
    b = simulate_trial(TrialDesign(), make_rng(2))
    assert not np.allclose(a["Mood"], b["Mood"])


def test_make_rng_passes_generator_through():
    g = np.random.default_rng(0)
    assert make_rng(g) is g


def test_default_seed_sample_mean_close_to_population_mean():
    design = TrialDesign()
    df = simulate_trial(design, make_rng(42))
    assert len(df) == 900
    assert population_mean(design) == pytest.approx(9.175)
    # arm assignment dominates the spread of the sample mean (SD ≈ 0.17)
    assert abs(df["Mood"].mean() - population_mean(design)) < 0.6


def test_zero_noise_reproduces_expected_mood():
    design = TrialDesign(n_subjects=10, n_timepoints=3, noise_sd=0.0)
    df = simulate_trial(design, make_rng(0))
    np.testing.assert_allclose(df["Mood"], expected_mood(design, df["Time"], df["Drug"]))


def test_balanced_allocation_exact_split():
    design = TrialDesign(n_subjects=50, allocation="balanced", drug_prob=0.4)
    df = simulate_trial(design, make_rng(9))
    arms = df.groupby("Subject")["Drug"].first()
    assert arms.sum() == 20


def test_drug_prob_extremes():
    all_placebo = simulate_trial(TrialDesign(n_subjects=10, drug_prob=0.0), make_rng(0))
    all_drug = simulate_trial(TrialDesign(n_subjects=10, drug_prob=1.0), make_rng(0))
    assert all_placebo["Drug"].sum() == 0
    assert (all_drug["Drug"] == 1).all()


def test_true_effects_keys():
    assert set(true_effects(TrialDesign())) == {"Intercept", "Time", "Drug", "Time:Drug"}


@pytest.mark.parametrize("kwargs", [
    dict(n_subjects=0),
    dict(n_timepoints=0),
    dict(n_subjects=-3),
    dict(n_subjects=2.5),
    dict(noise_sd=-1.0),
    dict(noise_sd=float("nan")),
    dict(drug_prob=1.5),
    dict(allocation="stratified"),
    dict(subject_slope_sd=-0.1),
    dict(intercept=float("inf")),
])
def test_degenerate_designs_raise(kwargs):
    with pytest.raises(DataGenerationError):
        simulate_trial(TrialDesign(**kwargs), make_rng(0))


def test_data_generation_error_is_value_error():
    with pytest.raises(ValueError):
        TrialDesign(n_subjects=0).validate()
