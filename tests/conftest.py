from __future__ import annotations

import pandas as pd
import pytest

MONTHS = ["2019-01-01", "2019-02-01", "2019-03-01", "2019-04-01"]


def make_activity(histories: dict[str, list[int]], payments: dict[str, list[int]] | None = None):
    """Long activity frame with one row per company and month in MONTHS."""
    payments = payments or {}
    rows = []
    for company_id, mandates in histories.items():
        pays = payments.get(company_id, [0] * len(mandates))
        for month, m, p in zip(MONTHS, mandates, pays):
            rows.append(
                {"company_id": company_id, "date": pd.Timestamp(month), "mandates": m, "payments": p}
            )
    return pd.DataFrame(rows)


def make_companies(company_ids, vertical: str = "retail") -> pd.DataFrame:
    return pd.DataFrame(
        {
            "company_id": list(company_ids),
            "incorporation_date": pd.to_datetime(["2015-01-01"] * len(company_ids)),
            "vertical": [vertical] * len(company_ids),
        }
    )


@pytest.fixture
def scenario_activity() -> pd.DataFrame:
    return make_activity(
        {
            "X": [5, 3, 0, 0],
            "Y": [0, 0, 0, 0],
            "Z": [1, 0, 2, 4],
        }
    )


@pytest.fixture
def tmp_config(tmp_path, monkeypatch):
    from mandate_churn import config

    monkeypatch.setattr(config, "RAW_DIR", tmp_path / "raw")
    monkeypatch.setattr(config, "PROCESSED_DIR", tmp_path / "processed")
    monkeypatch.setattr(config, "REPORTS_DIR", tmp_path / "reports")
    monkeypatch.setattr(config, "MODELS_DIR", tmp_path / "models")
    return config
