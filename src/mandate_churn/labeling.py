# src/mandate_churn/labeling.py
"""
Churn labeling for the monthly company activity table.

A company churns in the first month after its last month with any mandate or
payment activity. Companies that were never active, or that are still active
in the final observed month, are not churned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

import pandas as pd

from .data_prep import normalize_activity

logger = logging.getLogger(__name__)

CHURNED = "churned"
NO_ACTIVITY = "no_activity"
STILL_ACTIVE = "still_active"

ONE_MONTH = pd.DateOffset(months=1)

ChurnStatus = Literal["churned", "no_activity", "still_active"]


class MissingMonthError(LookupError):
    """A (company_id, month) row needed for a lookup is absent."""

    def __init__(self, company_id: str, month: pd.Timestamp, purpose: str) -> None:
        self.company_id = company_id
        self.month = pd.Timestamp(month)
        self.purpose = purpose
        super().__init__(
            f"company {company_id!r} has no activity row for "
            f"{self.month.date()} ({purpose})"
        )


@dataclass(frozen=True)
class ChurnOutcome:
    """Tagged result of labeling one company; dates are set only where they apply."""

    company_id: str
    status: ChurnStatus
    last_active_date: pd.Timestamp | None = None
    churn_date: pd.Timestamp | None = None

    @property
    def churned(self) -> bool:
        return self.status == CHURNED


@dataclass(frozen=True)
class ChurnLabels:
    """
    Activity table with its churn column plus the per-company outcomes.

    ``outcomes`` has one row per labeled company with columns company_id,
    status, last_active_date and churn_date (NaT unless churned). Companies
    in ``skipped`` have no outcome row; the value is the reason.
    """

    activity: pd.DataFrame
    outcomes: pd.DataFrame
    min_date: pd.Timestamp
    max_date: pd.Timestamp
    skipped: dict[str, str] = field(default_factory=dict)

    def churn_dates(self) -> pd.Series:
        """churn_date indexed by company_id, churned companies only."""
        churned = self.outcomes[self.outcomes["status"] == CHURNED]
        return churned.set_index("company_id")["churn_date"]

    def summary(self) -> dict[str, object]:
        counts = self.outcomes["status"].value_counts()
        return {
            "companies": int(self.activity["company_id"].nunique()),
            CHURNED: int(counts.get(CHURNED, 0)),
            NO_ACTIVITY: int(counts.get(NO_ACTIVITY, 0)),
            STILL_ACTIVE: int(counts.get(STILL_ACTIVE, 0)),
            "skipped": dict(self.skipped),
        }


def label_company(history: pd.DataFrame, max_date: pd.Timestamp) -> ChurnOutcome:
    """
    Label one company's activity history.

    Parameters
    ----------
    history:
        All activity rows for a single company_id, in any order.
    max_date:
        Final month of the whole dataset (not of this company).
    """

    company_id = str(history["company_id"].iloc[0])
    ordered = history.sort_values("date")
    months = set(ordered["date"])

    active = (ordered["mandates"] != 0) | (ordered["payments"] != 0)
    if not active.any():
        _require_month(company_id, months, max_date, "final observed month")
        return ChurnOutcome(company_id=company_id, status=NO_ACTIVITY)

    last_active = pd.Timestamp(ordered.loc[active, "date"].iloc[-1])
    if last_active >= max_date:
        return ChurnOutcome(
            company_id=company_id, status=STILL_ACTIVE, last_active_date=last_active
        )

    churn_date = last_active + ONE_MONTH
    _require_month(company_id, months, churn_date, "month after last activity")
    return ChurnOutcome(
        company_id=company_id,
        status=CHURNED,
        last_active_date=last_active,
        churn_date=churn_date,
    )


def label_churn(
    activity: pd.DataFrame, on_missing: Literal["skip", "raise"] = "skip"
) -> ChurnLabels:
    """
    Label every company in the activity table.

    Company ids are normalized to strings, so ``outcomes``, ``churn_dates()``
    and the returned activity table all share one key type.

    Companies are labeled independently. With ``on_missing="skip"`` a company
    whose history is missing a month needed for its label is logged and left
    out of ``outcomes``; with ``"raise"`` the MissingMonthError propagates.
    """

    if on_missing not in ("skip", "raise"):
        raise ValueError(f"on_missing must be 'skip' or 'raise', got {on_missing!r}")
    if activity.empty:
        raise ValueError("Activity table is empty; nothing to label.")
    # string company ids, chronological order and whole-number counts from here on
    activity = normalize_activity(activity)

    min_date = pd.Timestamp(activity["date"].min())
    max_date = pd.Timestamp(activity["date"].max())

    outcomes: list[ChurnOutcome] = []
    skipped: dict[str, str] = {}
    for company_id, history in activity.groupby("company_id", sort=True):
        try:
            outcomes.append(label_company(history, max_date))
        except MissingMonthError as exc:
            if on_missing == "raise":
                raise
            logger.warning("Skipping company %s: %s", company_id, exc)
            skipped[str(company_id)] = str(exc)

    outcome_df = pd.DataFrame(
        [
            {
                "company_id": o.company_id,
                "status": o.status,
                "last_active_date": o.last_active_date,
                "churn_date": o.churn_date,
            }
            for o in outcomes
        ],
        columns=["company_id", "status", "last_active_date", "churn_date"],
    )
    outcome_df["last_active_date"] = pd.to_datetime(outcome_df["last_active_date"])
    outcome_df["churn_date"] = pd.to_datetime(outcome_df["churn_date"])

    labeled = activity.copy()
    events = {(o.company_id, o.churn_date) for o in outcomes if o.churned}
    labeled["churn"] = [
        (str(company_id), pd.Timestamp(date)) in events
        for company_id, date in zip(labeled["company_id"], labeled["date"])
    ]

    return ChurnLabels(
        activity=labeled,
        outcomes=outcome_df,
        min_date=min_date,
        max_date=max_date,
        skipped=skipped,
    )


def _require_month(
    company_id: str, months: set[pd.Timestamp], month: pd.Timestamp, purpose: str
) -> None:
    if month not in months:
        raise MissingMonthError(company_id, month, purpose)
