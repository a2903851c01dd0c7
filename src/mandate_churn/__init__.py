"""Convenience exports for the churn labeling and modeling pipeline."""

from .churn_models import compare_models, fit_final_model
from .labeling import MissingMonthError, label_churn
from .leading_indicator import derive_leading_indicator
from .training_data import make_training_frame, select_training_rows

__all__ = [
    "MissingMonthError",
    "compare_models",
    "derive_leading_indicator",
    "fit_final_model",
    "label_churn",
    "make_training_frame",
    "select_training_rows",
]
