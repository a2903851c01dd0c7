# src/mandate_churn/risk_scoring.py
"""
Score companies with a persisted churn model.
Outputs:
  • scores_<date>.csv        (all companies, highest risk first)
"""

from __future__ import annotations

from pathlib import Path

import joblib
import numpy as np
import pandas as pd

from . import config
from .churn_models import INDICATOR_MODEL_FEATURES


def risk_tier(scores: pd.Series) -> pd.Series:
    """Bucket churn probabilities into the configured tiers."""
    bins = [-np.inf, *config.RISK_TIER_BINS, np.inf]
    return pd.cut(scores, bins=bins, labels=config.RISK_TIER_LABELS).astype(str)


def score_companies(dataset: pd.DataFrame, model_path: Path | str) -> pd.DataFrame:
    """
    Attach churn probability and risk tier to each row of ``dataset``.

    The final model is fit on the full training table, so scoring that same
    table gives in-sample scores: useful for ranking, not for evaluation.
    Out-of-sample metrics come from ``churn_models.compare_models``.
    """

    path = Path(model_path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}. Run churn_models first.")

    pipeline = joblib.load(path)
    result = dataset[["company_id", *INDICATOR_MODEL_FEATURES, "churn"]].copy()
    result["score"] = pipeline.predict_proba(dataset[INDICATOR_MODEL_FEATURES])[:, 1]
    result["risk_tier"] = risk_tier(result["score"])
    return result.sort_values(["score", "company_id"], ascending=[False, True]).reset_index(
        drop=True
    )


def run(dataset: pd.DataFrame, model_path: Path | str, as_of: pd.Timestamp) -> Path:
    scored = score_companies(dataset, model_path)

    out_dir = Path(config.PROCESSED_DIR)
    out_dir.mkdir(parents=True, exist_ok=True)
    scores_path = out_dir / f"scores_{pd.Timestamp(as_of).date()}.csv"
    scored.to_csv(scores_path, index=False)

    print(f"Wrote: {scores_path}")
    print(scored.head())
    return scores_path
