"""
Preprocessing module for the mood-trial pipeline.

Time is the only covariate that needs work: it is standardised with the
mean and *sample* standard deviation of the whole column (not per subject),
matching what the mixed models are fit on. The scaler is a regular
scikit-learn transformer so it slots into a ColumnTransformer and can be
persisted next to a fitted model.
"""
import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.compose import ColumnTransformer
from sklearn.utils.validation import check_is_fitted

from src.data.ColumnSchema import _ColumnSchema
from src.data.load_data import clean_raw
from src.utils.errors import PreprocessingError


# ───────────────────────────────────────────────────────────────────────
# Scaler
# ───────────────────────────────────────────────────────────────────────
class TimeScaler(TransformerMixin, BaseEstimator):
    """
    z-score each column with its empirical mean and standard deviation.

    Unlike ``StandardScaler`` the spread uses ``ddof`` (sample SD by
    default) and a constant column is an error instead of a silent
    scale of 1.

    Parameters
    ----------
    ddof : int, default 1
        Delta degrees of freedom for the standard deviation.
    suffix : str, default ""
        Appended to input names by ``get_feature_names_out``.
    """

    def __init__(self, ddof: int = 1, suffix: str = ""):
        self.ddof = ddof
        self.suffix = suffix

    @staticmethod
    def _as_2d(X) -> np.ndarray:
        arr = np.asarray(X, dtype=float)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2:
            raise PreprocessingError(f"Expected 1-D or 2-D input, got shape {arr.shape}")
        return arr

    def fit(self, X, y=None):
        if isinstance(X, pd.DataFrame):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        arr = self._as_2d(X)

        if arr.shape[0] == 0:
            raise PreprocessingError("Cannot scale an empty sequence")
        if not np.all(np.isfinite(arr)):
            raise PreprocessingError("Cannot scale a sequence containing NaN or Inf")
        if arr.shape[0] <= self.ddof:
            raise PreprocessingError(
                f"Need more than {self.ddof} value(s) to estimate a standard deviation"
            )

        scale = arr.std(axis=0, ddof=self.ddof)
        if np.any(scale == 0) or not np.all(np.isfinite(scale)):
            raise PreprocessingError(
                "Standard deviation is zero; a constant covariate cannot be standardised"
            )

        self.mean_ = arr.mean(axis=0)
        self.scale_ = scale
        self.n_features_in_ = arr.shape[1]
        return self

    def transform(self, X):
        check_is_fitted(self, ("mean_", "scale_"))
        arr = self._as_2d(X)
        if arr.shape[1] != self.n_features_in_:
            raise PreprocessingError(
                f"Fitted on {self.n_features_in_} column(s), got {arr.shape[1]}"
            )
        return (arr - self.mean_) / self.scale_

    def inverse_transform(self, X):
        check_is_fitted(self, ("mean_", "scale_"))
        arr = self._as_2d(X)
        return arr * self.scale_ + self.mean_

    def get_feature_names_out(self, input_features=None):
        if input_features is None:
            input_features = getattr(
                self, "feature_names_in_",
                [f"x{i}" for i in range(getattr(self, "n_features_in_", 1))],
            )
        return np.asarray([f"{name}{self.suffix}" for name in input_features], dtype=object)


def scale_time(values) -> np.ndarray:
    """Return the z-scores of a 1-D sequence (sample SD)."""
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1:
        raise PreprocessingError(f"scale_time expects a 1-D sequence, got shape {arr.shape}")
    return TimeScaler().fit_transform(arr).ravel()


# ───────────────────────────────────────────────────────────────────────
# DataFrame-level helpers
# ───────────────────────────────────────────────────────────────────────
def fit_preprocessor(df: pd.DataFrame) -> tuple[pd.DataFrame, ColumnTransformer]:
    """
    Fit the Time scaler on the full dataset and append ``Time_scaled``.

    Returns
    -------
    pd.DataFrame
        Copy of ``df`` with the scaled column.
    ColumnTransformer
        Fitted transformer, reusable on prediction grids.
    """
    cols = _ColumnSchema()
    ct = ColumnTransformer(
        [("time", TimeScaler(suffix="_scaled"), [cols.time()])],
        remainder="drop",
        verbose_feature_names_out=False,
    )
    scaled = ct.fit_transform(df)

    out = df.copy()
    out[cols.scaled_time()] = np.asarray(scaled, dtype=float)[:, 0]
    return out, ct


def transform_preprocessor(df: pd.DataFrame, transformer: ColumnTransformer) -> pd.DataFrame:
    """Apply the training mean/SD to new rows (e.g. a grid of raw visits)."""
    cols = _ColumnSchema()
    scaled = transformer.transform(df)
    out = df.copy()
    out[cols.scaled_time()] = np.asarray(scaled, dtype=float)[:, 0]
    return out


def inverse_transform_preprocessor(values, transformer: ColumnTransformer) -> np.ndarray:
    """Map scaled time values back to raw visit units."""
    scaler = transformer.named_transformers_["time"]
    return scaler.inverse_transform(np.asarray(values, dtype=float)).ravel()


def prepare_for_mixed(df: pd.DataFrame, debug: bool = False) -> tuple[pd.DataFrame, ColumnTransformer]:
    """
    Check the trial layout *and* add the scaled covariate expected by the
    mixed-effects models.
    """
    df = clean_raw(df, debug=debug)
    return fit_preprocessor(df)


# ───────────────────────────────────────────────────────────────────────
# Smoke test (only run when module executed directly)
# ───────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    from src.data.simulate import simulate_trial

    df = simulate_trial()
    df_model, tf = prepare_for_mixed(df, debug=True)
    print(df_model.head(8))
    print("Time_scaled mean/sd:",
          round(df_model["Time_scaled"].mean(), 6),
          round(df_model["Time_scaled"].std(), 6))
    print("Back to raw visits:", inverse_transform_preprocessor(df_model["Time_scaled"][:6], tf))
