# tests/conftest.py
import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.data.simulate import TrialDesign, simulate_trial, make_rng
from src.features.preprocess import prepare_for_mixed
from src.models.mixed import fit_all_models


# Register custom markers
def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests that are slow to run")


@pytest.fixture(autouse=True)
def _close_figures():
    """Keep open matplotlib figures from piling up across tests."""
    yield
    import matplotlib.pyplot as plt
    plt.close("all")


@pytest.fixture(scope="session")
def design():
    """Small design with real subject-level spread so every model is identifiable."""
    return TrialDesign(
        n_subjects=40,
        n_timepoints=5,
        subject_intercept_sd=1.0,
        subject_slope_sd=0.3,
    )


@pytest.fixture(scope="session")
def trial_df(design):
    return simulate_trial(design, make_rng(7))


@pytest.fixture(scope="session")
def model_df(trial_df):
    df_model, _ = prepare_for_mixed(trial_df)
    return df_model


@pytest.fixture(scope="session")
def fitted(model_df):
    """ML fits of model1, model2 and model3 on the same frame."""
    return fit_all_models(model_df)


@pytest.fixture
def rng():
    return np.random.default_rng(0)
