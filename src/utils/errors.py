"""
Exception taxonomy for the mood-trial pipeline.

Every stage raises one of these and nothing is retried: a failure in one
stage aborts everything downstream of it.
"""


class MoodTrialError(Exception):
    """Base class for every error raised by this package."""


class DataGenerationError(MoodTrialError, ValueError):
    """Degenerate trial design or a dataset that breaks the trial layout."""


class PreprocessingError(MoodTrialError, ValueError):
    """Covariate cannot be standardised (empty, constant or non-finite)."""


class EstimationError(MoodTrialError, RuntimeError):
    """Mixed-model fit did not converge or produced a singular covariance."""


class IncompatibleModelsError(MoodTrialError, ValueError):
    """Fitted models cannot be compared by a likelihood-ratio test."""


class PlottingError(MoodTrialError, ValueError):
    """Malformed prediction grid or plotting input."""
