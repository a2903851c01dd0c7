# src/mandate_churn/leading_indicator.py
"""
Leading indicator for churned companies: flags a drop in mandates between
two months and one month before the churn month.
"""

from __future__ import annotations

import logging
from typing import Literal

import pandas as pd

from .labeling import ChurnLabels, MissingMonthError

logger = logging.getLogger(__name__)


def company_indicator(
    history: pd.DataFrame, churn_date: pd.Timestamp, min_date: pd.Timestamp
) -> int:
    """Return 1 if mandates fell from two months before churn to one month before."""

    company_id = str(history["company_id"].iloc[0])
    churn_date = pd.Timestamp(churn_date)
    month_prior = churn_date - pd.DateOffset(months=1)
    two_month_prior = churn_date - pd.DateOffset(months=2)

    if two_month_prior < min_date:
        return 0

    mandates = history.set_index("date")["mandates"]
    baseline = _mandates_at(mandates, company_id, two_month_prior)
    if baseline <= 0:
        return 0

    latest = _mandates_at(mandates, company_id, month_prior)
    return int(latest < baseline)


def derive_leading_indicator(
    training: pd.DataFrame,
    labels: ChurnLabels,
    on_missing: Literal["skip", "raise"] = "skip",
) -> tuple[pd.DataFrame, dict[str, str]]:
    """
    Return a copy of the training table with ``leading_indicator`` filled in,
    plus the companies dropped because a lookup month was missing.
    """

    if on_missing not in ("skip", "raise"):
        raise ValueError(f"on_missing must be 'skip' or 'raise', got {on_missing!r}")

    result = training.copy()
    result["leading_indicator"] = 0

    churn_dates = labels.churn_dates()
    histories = labels.activity[labels.activity["company_id"].isin(churn_dates.index)]

    flags: dict[str, int] = {}
    skipped: dict[str, str] = {}
    for company_id, history in histories.groupby("company_id", sort=True):
        try:
            flags[str(company_id)] = company_indicator(
                history, churn_dates.loc[company_id], labels.min_date
            )
        except MissingMonthError as exc:
            if on_missing == "raise":
                raise
            logger.warning("Dropping company %s from training rows: %s", company_id, exc)
            skipped[str(company_id)] = str(exc)

    if skipped:
        result = result[~result["company_id"].isin(skipped)].reset_index(drop=True)

    hits = result["company_id"].map(flags).fillna(0).astype(int)
    result["leading_indicator"] = hits
    return result, skipped


def _mandates_at(mandates: pd.Series, company_id: str, month: pd.Timestamp) -> int:
    if month not in mandates.index:
        raise MissingMonthError(company_id, month, "leading indicator lookback")
    return int(mandates.loc[month])
