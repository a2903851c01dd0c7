# src/mandate_churn/data_prep.py
"""
Data ingestion helpers that turn the wide company activity export into the
normalized long Activity Table (one row per company and month) plus a table
of per-company attributes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from . import config

ACTIVITY_COLUMN = re.compile(r"^(\d{4}-\d{2}-\d{2})_(mandates|payments)$")
COMPANY_COLUMNS = ["company_id", "incorporation_date", "vertical"]
ACTIVITY_COLUMNS = ["company_id", "date", "mandates", "payments"]


@dataclass(frozen=True)
class RawData:
    """Container for the long activity table and company attributes."""

    activity: pd.DataFrame
    companies: pd.DataFrame


def load_raw_data(path: Path | str | None = None) -> RawData:
    """
    Load the wide activity export and reshape it.

    Parameters
    ----------
    path:
        Optional override for the CSV location. Defaults to
        config.RAW_DIR / config.RAW_FILENAME.
    """

    csv_path = Path(path) if path else Path(config.RAW_DIR) / config.RAW_FILENAME
    if not csv_path.exists():
        raise FileNotFoundError(f"Activity export not found: {csv_path}")

    wide = pd.read_csv(csv_path, dtype={"company_id": str})
    activity, companies = reshape_activity(wide)
    return RawData(activity=activity, companies=companies)


def reshape_activity(wide: pd.DataFrame) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Split a wide export into (long activity table, company attributes)."""

    missing = set(COMPANY_COLUMNS).difference(wide.columns)
    if missing:
        raise ValueError(
            f"Activity export is missing required columns: {sorted(missing)}. "
            f"Available columns: {list(wide.columns)}"
        )

    month_columns = [col for col in wide.columns if ACTIVITY_COLUMN.match(str(col))]
    if not month_columns:
        raise ValueError("Activity export has no '<YYYY-MM-DD>_mandates|payments' columns.")

    wide = wide.copy()
    wide["company_id"] = wide["company_id"].astype(str)
    if wide["company_id"].duplicated().any():
        dupes = sorted(wide.loc[wide["company_id"].duplicated(), "company_id"].unique())
        raise ValueError(f"Duplicate company_id rows in export: {dupes}")

    companies = wide[COMPANY_COLUMNS].copy()
    companies["incorporation_date"] = pd.to_datetime(
        companies["incorporation_date"], errors="coerce"
    )
    companies["vertical"] = companies["vertical"].fillna("Unknown").astype(str)

    long = wide.melt(
        id_vars=["company_id"],
        value_vars=month_columns,
        var_name="column",
        value_name="count",
    )
    parts = long["column"].str.extract(ACTIVITY_COLUMN.pattern)
    long["date"] = pd.to_datetime(parts[0], format="%Y-%m-%d")
    long["metric"] = parts[1]

    blank = long["count"].isna()
    counts = pd.to_numeric(long["count"], errors="coerce")
    unparsed = counts.isna() & ~blank
    if unparsed.any():
        columns = sorted(long.loc[unparsed, "column"].unique())
        raise ValueError(f"Non-numeric activity counts in columns: {columns}")
    fractional = counts.notna() & (counts % 1 != 0)
    if fractional.any():
        columns = sorted(long.loc[fractional, "column"].unique())
        raise ValueError(f"Activity counts must be whole numbers; check columns: {columns}")
    # a blank cell means no events were recorded that month
    long["count"] = counts.fillna(0)

    activity = (
        long.pivot_table(
            index=["company_id", "date"],
            columns="metric",
            values="count",
            aggfunc="sum",
            fill_value=0,
        )
        .reset_index()
        .rename_axis(columns=None)
    )
    for metric in ("mandates", "payments"):
        if metric not in activity.columns:
            activity[metric] = 0

    activity = normalize_activity(activity)
    return activity, companies.sort_values("company_id").reset_index(drop=True)


def normalize_activity(activity: pd.DataFrame) -> pd.DataFrame:
    """Validate a long activity table and return it sorted with clean dtypes."""

    missing = set(ACTIVITY_COLUMNS).difference(activity.columns)
    if missing:
        raise ValueError(f"Activity table is missing columns: {sorted(missing)}")

    df = activity[ACTIVITY_COLUMNS].copy()
    df["company_id"] = df["company_id"].astype(str)
    df["date"] = pd.to_datetime(df["date"])

    off_month = df["date"] != df["date"].dt.to_period("M").dt.to_timestamp()
    if off_month.any():
        bad = sorted(df.loc[off_month, "date"].dt.date.astype(str).unique())
        raise ValueError(f"Activity dates must be the first of a month; got {bad}")

    for metric in ("mandates", "payments"):
        values = pd.to_numeric(df[metric], errors="coerce")
        if values.isna().any() or (values % 1 != 0).any():
            raise ValueError(f"{metric} counts must be whole numbers with no gaps.")
        df[metric] = values.astype(int)
        if (df[metric] < 0).any():
            raise ValueError(f"Negative {metric} counts in activity table.")

    duplicated = df.duplicated(["company_id", "date"])
    if duplicated.any():
        pairs = df.loc[duplicated, ["company_id", "date"]].head(5).values.tolist()
        raise ValueError(f"Duplicate (company_id, date) rows, e.g. {pairs}")

    return df.sort_values(["company_id", "date"]).reset_index(drop=True)


def incorporation_time(
    incorporation_dates: pd.Series, reference: str | pd.Timestamp | None = None
) -> pd.Series:
    """Years from incorporation to the reference date, rounded to one decimal."""

    reference_ts = pd.Timestamp(config.REFERENCE_DATE if reference is None else reference)
    dates = pd.to_datetime(incorporation_dates, errors="coerce")
    return ((reference_ts - dates).dt.days / config.DAYS_PER_YEAR).round(1)


def find_incomplete_companies(activity: pd.DataFrame) -> list[str]:
    """Companies whose months do not cover the dataset's full month range."""

    if activity.empty:
        return []
    months = pd.date_range(activity["date"].min(), activity["date"].max(), freq="MS")
    counts = activity.groupby("company_id")["date"].nunique()
    return sorted(counts[counts != len(months)].index)


def ensure_directories() -> None:
    """Create the downstream directories if they do not already exist."""

    for path in (config.PROCESSED_DIR, config.REPORTS_DIR, config.MODELS_DIR):
        Path(path).mkdir(parents=True, exist_ok=True)
