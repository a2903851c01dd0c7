from __future__ import annotations

import pandas as pd
import pytest

from conftest import make_activity
from mandate_churn.labeling import (
    CHURNED,
    NO_ACTIVITY,
    STILL_ACTIVE,
    MissingMonthError,
    label_churn,
    label_company,
)

APR = pd.Timestamp("2019-04-01")


def _churn_months(labels, company_id: str) -> list[pd.Timestamp]:
    rows = labels.activity[(labels.activity["company_id"] == company_id) & labels.activity["churn"]]
    return list(rows["date"])


def test_churn_flagged_month_after_last_activity(scenario_activity: pd.DataFrame) -> None:
    labels = label_churn(scenario_activity)

    assert _churn_months(labels, "X") == [pd.Timestamp("2019-03-01")]
    outcome = labels.outcomes.set_index("company_id").loc["X"]
    assert outcome["status"] == CHURNED
    assert outcome["last_active_date"] == pd.Timestamp("2019-02-01")


def test_never_active_company_is_not_churned(scenario_activity: pd.DataFrame) -> None:
    labels = label_churn(scenario_activity)

    assert _churn_months(labels, "Y") == []
    assert labels.outcomes.set_index("company_id").loc["Y", "status"] == NO_ACTIVITY


def test_active_in_final_month_is_not_churned(scenario_activity: pd.DataFrame) -> None:
    labels = label_churn(scenario_activity)

    assert _churn_months(labels, "Z") == []
    assert labels.outcomes.set_index("company_id").loc["Z", "status"] == STILL_ACTIVE


def test_payments_alone_keep_a_company_active() -> None:
    activity = make_activity({"P": [2, 0, 0, 0]}, payments={"P": [0, 0, 3, 0]})
    labels = label_churn(activity)

    assert _churn_months(labels, "P") == [APR]


def test_at_most_one_churn_row_per_company() -> None:
    activity = make_activity(
        {"A": [1, 0, 1, 0], "B": [0, 1, 0, 0], "C": [3, 0, 0, 0], "D": [0, 0, 0, 7]}
    )
    labels = label_churn(activity)

    per_company = labels.activity.groupby("company_id")["churn"].sum()
    assert (per_company <= 1).all()
    assert _churn_months(labels, "A") == [APR]
    assert _churn_months(labels, "B") == [pd.Timestamp("2019-03-01")]


def test_row_order_does_not_matter(scenario_activity: pd.DataFrame) -> None:
    shuffled = scenario_activity.sample(frac=1.0, random_state=7).reset_index(drop=True)

    assert label_company(shuffled[shuffled["company_id"] == "X"], APR).churn_date == pd.Timestamp(
        "2019-03-01"
    )
    assert set(label_churn(shuffled).churn_dates().index) == {"X"}


def test_missing_churn_month_is_skipped_and_reported() -> None:
    activity = make_activity({"X": [5, 3, 0, 0], "Z": [1, 1, 1, 1]})
    gap = activity[~((activity["company_id"] == "X") & (activity["date"] == "2019-03-01"))]

    labels = label_churn(gap)

    assert "X" in labels.skipped
    assert "X" not in set(labels.outcomes["company_id"])
    assert labels.summary()["still_active"] == 1


def test_missing_churn_month_raises_when_requested() -> None:
    activity = make_activity({"X": [5, 3, 0, 0]})
    gap = activity[activity["date"] != pd.Timestamp("2019-03-01")]

    with pytest.raises(MissingMonthError) as excinfo:
        label_churn(gap, on_missing="raise")
    assert excinfo.value.company_id == "X"


def test_empty_activity_table_is_rejected() -> None:
    with pytest.raises(ValueError):
        label_churn(make_activity({}))


def test_integer_company_ids_are_normalized() -> None:
    activity = make_activity({"X": [5, 3, 0, 0], "Z": [1, 1, 1, 1]})
    activity["company_id"] = activity["company_id"].map({"X": 1, "Z": 2})

    labels = label_churn(activity)

    assert list(labels.churn_dates().index) == ["1"]
    assert set(labels.activity["company_id"]) == {"1", "2"}
    assert _churn_months(labels, "1") == [pd.Timestamp("2019-03-01")]
