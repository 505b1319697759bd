# tests/test_compare.py
import numpy as np
import pytest
from scipy import stats

from src.data.simulate import make_rng, simulate_trial
from src.features.preprocess import prepare_for_mixed
from src.models.compare import compare_models, information_criteria
from src.models.mixed import fit_mixed
from src.utils.errors import IncompatibleModelsError


def test_model_compared_with_itself(fitted):
    lrt = compare_models(fitted["model2"], fitted["model2"])
    assert lrt.statistic == 0.0
    assert lrt.df_diff == 0
    assert lrt.p_value == 1.0


def test_model1_vs_model2(fitted):
    lrt = compare_models(fitted["model1"], fitted["model2"])
    assert (lrt.small, lrt.large) == ("model1", "model2")
    assert lrt.df_diff == 3
    assert lrt.statistic >= 0.0
    assert lrt.p_value == pytest.approx(stats.chi2.sf(lrt.statistic, 3))
    # fixed parts differ, so no boundary correction
    assert np.isnan(lrt.p_value_boundary)


def test_argument_order_does_not_matter(fitted):
    a = compare_models(fitted["model3"], fitted["model2"])
    b = compare_models(fitted["model2"], fitted["model3"])
    assert a == b


def test_model3_vs_model2_boundary_p(fitted):
    lrt = compare_models(fitted["model3"], fitted["model2"])
    assert lrt.df_diff == 2
    expected = 0.5 * stats.chi2.sf(lrt.statistic, 1) + 0.5 * stats.chi2.sf(lrt.statistic, 2)
    assert lrt.p_value_boundary == pytest.approx(expected)
    assert lrt.p_value_boundary <= lrt.p_value


def test_real_intercept_variance_is_detected(fitted):
    # the fixture simulates a subject intercept SD of 1.0
    lrt = compare_models(fitted["model3"], fitted["model2"])
    assert lrt.p_value < 0.05


def test_non_nested_models_raise(fitted):
    # model1 has a random intercept only, model3 a random slope only
    with pytest.raises(IncompatibleModelsError, match="not nested"):
        compare_models(fitted["model1"], fitted["model3"])


def test_reml_fit_rejected(model_df, fitted):
    reml = fit_mixed(model_df, "model1", reml=True)
    with pytest.raises(IncompatibleModelsError, match="REML"):
        compare_models(reml, fitted["model2"])


def test_different_data_rejected(design, fitted):
    other, _ = prepare_for_mixed(simulate_trial(design, make_rng(99)))
    other_fit = fit_mixed(other, "model1")
    with pytest.raises(IncompatibleModelsError, match="identical data"):
        compare_models(other_fit, fitted["model2"])


def test_result_renders(fitted):
    lrt = compare_models(fitted["model3"], fitted["model2"])
    text = str(lrt)
    assert "model3 vs model2" in text
    assert "boundary-corrected" in text
    assert set(lrt.as_dict()) >= {"statistic", "df_diff", "p_value"}


def test_information_criteria_sorted_by_aic(fitted):
    table = information_criteria(fitted)
    assert set(table["model"]) == {"model1", "model2", "model3"}
    assert table["aic"].is_monotonic_increasing
    assert table.loc[table["model"] == "model2", "n_params"].item() == 8
