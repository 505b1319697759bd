# tests/test_hierarchical.py
import numpy as np
import pytest

from src.models.hierarchical_cpu import FIXED_TERMS, design_arrays, fit_bayesian_mood


def test_design_arrays(model_df):
    X, y, subj_idx, labels, t = design_arrays(model_df)
    assert X.shape == (len(model_df), 3)
    np.testing.assert_allclose(X[:, 2], X[:, 0] * X[:, 1])
    assert len(labels) == model_df["Subject"].nunique()
    assert subj_idx.min() == 0 and subj_idx.max() == len(labels) - 1
    np.testing.assert_allclose(y, model_df["Mood"])


@pytest.fixture(scope="module")
def idata(model_df):
    return fit_bayesian_mood(model_df, draws=50, tune=50, chains=1, random_seed=1)


@pytest.mark.slow
def test_bayesian_smoke(idata, model_df):
    """
    One fit with tiny draws/tune to make sure the model, posterior
    predictive and log-likelihood groups wire together.
    """
    assert "posterior" in idata
    assert "posterior_predictive" in idata
    assert "log_likelihood" in idata
    assert list(idata.posterior["beta"].coords["term"].values) == FIXED_TERMS
    assert idata.posterior["u0"].shape[-1] == model_df["Subject"].nunique()


@pytest.mark.slow
def test_posterior_summaries(idata, model_df, tmp_path):
    from src.utils.bayesian_metrics import compute_classical_metrics
    from src.utils.posterior import global_effects, posterior_to_frame

    subj = posterior_to_frame(idata)
    assert len(subj) == model_df["Subject"].nunique()
    assert {"u0_mean", "u1_q97.5"} <= set(subj.columns)

    effects = global_effects(idata, json_path=tmp_path / "effects.json")
    assert set(effects["beta"]) == set(FIXED_TERMS)
    assert effects["sigma_e"] > 0
    assert (tmp_path / "effects.json").exists()

    metrics = compute_classical_metrics(idata, model_df["Mood"].to_numpy())
    assert metrics["rmse"] > 0


@pytest.mark.slow
def test_model_and_preprocessor_persist(idata, model_df, tmp_path):
    from src.features.preprocess import fit_preprocessor
    from src.utils.hierarchical_utils import (load_model, load_preprocessor,
                                              save_model, save_preprocessor)

    path = save_model(idata, tmp_path / "model.nc")
    restored = load_model(path)
    assert "posterior" in restored

    _, ct = fit_preprocessor(model_df)
    ct_path = save_preprocessor(ct, tmp_path / "scaler.joblib")
    again = load_preprocessor(ct_path)
    np.testing.assert_allclose(again.transform(model_df), ct.transform(model_df))


@pytest.mark.slow
def test_loo_and_waic(idata):
    from src.utils.bayesian_metrics import compute_bayesian_metrics

    metrics = compute_bayesian_metrics(idata)
    assert set(metrics) == {"looic", "p_loo", "waic", "p_waic", "prop_bad_k"}
    assert np.isfinite(metrics["looic"]) and np.isfinite(metrics["waic"])
    assert 0.0 <= metrics["prop_bad_k"] <= 1.0


@pytest.mark.slow
def test_pipeline_with_bayesian_fit(tmp_path, monkeypatch):
    import src.models.hierarchical_cpu as hcpu
    from src.data.simulate import TrialDesign
    from src.run_analysis import run_pipeline

    fit = hcpu.fit_bayesian_mood
    monkeypatch.setattr(hcpu, "fit_bayesian_mood",
                        lambda df, **kw: fit(df, draws=30, tune=30, chains=1, **kw))
    design = TrialDesign(n_subjects=20, n_timepoints=4, subject_intercept_sd=1.0,
                         subject_slope_sd=0.3)
    out = run_pipeline(design, seed=5, out_dir=tmp_path, plots=False, bayes=True, verbose=False)
    assert "idata" in out
    assert np.isfinite(out["bayes_metrics"]["looic"])
    assert (tmp_path / "bayes_model2.nc").exists()
