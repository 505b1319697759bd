# tests/test_run_analysis.py
import pytest

from src.data.simulate import TrialDesign
from src.run_analysis import build_parser, main, run_pipeline
from src.utils.errors import DataGenerationError

SMALL = TrialDesign(n_subjects=30, n_timepoints=5, subject_intercept_sd=1.0, subject_slope_sd=0.3)


def test_pipeline_end_to_end(tmp_path):
    out = run_pipeline(SMALL, seed=3, out_dir=tmp_path, verbose=False)
    assert set(out["models"]) == {"model1", "model2", "model3"}
    assert [(c.small, c.large) for c in out["comparisons"]] == [
        ("model1", "model2"),
        ("model3", "model2"),
    ]
    assert len(out["figures"]) == 12
    assert (tmp_path / "mood_trial.csv").exists()
    assert (tmp_path / "information_criteria.csv").exists()
    assert (tmp_path / "time_scaler.joblib").exists()


def test_pipeline_reml_skips_tests():
    out = run_pipeline(SMALL, seed=3, out_dir=None, reml=True, verbose=False)
    assert out["comparisons"] == []
    assert out["criteria"]["aic"].isna().all()


def test_pipeline_aborts_on_bad_design():
    with pytest.raises(DataGenerationError):
        run_pipeline(TrialDesign(n_subjects=0), out_dir=None, verbose=False)


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert (args.seed, args.subjects, args.timepoints) == (42, 150, 6)
    assert not args.reml and not args.bayes


def test_main_without_plots(tmp_path, capsys):
    main(["--subjects", "30", "--timepoints", "4", "--intercept-sd", "1", "--slope-sd", "0.3",
          "--no-plots", "--out-dir", str(tmp_path)])
    out = capsys.readouterr().out
    assert "Likelihood-ratio tests" in out
    assert not (tmp_path / "figures").exists()


def test_pipeline_on_default_design():
    out = run_pipeline(TrialDesign(), seed=42, out_dir=None, plots=False, verbose=False)
    models = out["models"]
    assert len(out["data"]) == 900
    assert all(fm.diagnostics.converged for fm in models.values())
    # no subject-level variation is simulated, so the random intercept sits at zero
    assert models["model1"].diagnostics.singular
    assert models["model2"].diagnostics.singular

    first, second = out["comparisons"]
    assert (first.df_diff, second.df_diff) == (3, 2)
    for lrt in out["comparisons"]:
        assert lrt.statistic >= 0.0
        assert 0.0 <= lrt.p_value <= 1.0
    assert out["criteria"]["singular"].any()
