# src/mandate_churn/training_data.py
"""
Create the supervised training dataset: one row per company, taken from the
churn-event month for churned companies and from the final observed month for
everyone else, then enriched with the leading indicator.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from . import config
from .data_prep import (
    RawData,
    ensure_directories,
    find_incomplete_companies,
    incorporation_time,
    load_raw_data,
)
from .labeling import ChurnLabels, label_churn
from .leading_indicator import derive_leading_indicator

logger = logging.getLogger(__name__)

TRAINING_COLUMNS = [
    "company_id",
    "incorporation_time",
    "vertical",
    "churn",
    "leading_indicator",
]


class LabelingInvariantError(RuntimeError):
    """A labeled company did not map to exactly one training row."""


@dataclass(frozen=True)
class TrainingArtifacts:
    dataset: pd.DataFrame
    labels: ChurnLabels
    max_date: pd.Timestamp
    positive_rate: float
    indicator_rate: float
    skipped: dict[str, str]


def select_training_rows(labels: ChurnLabels, companies: pd.DataFrame) -> pd.DataFrame:
    """
    Collapse the labeled activity table to one row per company.

    Churned companies contribute their churn-event row, the rest their row at
    the dataset's final month. Companies skipped during labeling are left out.
    """

    activity = labels.activity
    skipped = set(labels.skipped)

    churned = activity[activity["churn"]]
    churned_ids = set(churned["company_id"])
    retained = activity[
        (activity["date"] == labels.max_date)
        & ~activity["company_id"].isin(churned_ids)
        & ~activity["company_id"].isin(skipped)
    ]

    rows = pd.concat([churned, retained], ignore_index=True)
    _check_one_row_per_company(rows, activity, skipped)

    attributes = companies[["company_id", "incorporation_date", "vertical"]].copy()
    attributes["company_id"] = attributes["company_id"].astype(str)
    rows = rows.merge(attributes, on="company_id", how="left", validate="one_to_one")

    missing_attrs = rows["vertical"].isna()
    if missing_attrs.any():
        logger.warning(
            "%d companies have no attribute row; vertical set to 'Unknown'",
            int(missing_attrs.sum()),
        )

    dataset = pd.DataFrame(
        {
            "company_id": rows["company_id"],
            "incorporation_time": incorporation_time(rows["incorporation_date"]),
            "vertical": rows["vertical"].fillna("Unknown").astype("category"),
            "churn": rows["churn"].astype(int),
            "leading_indicator": 0,
        }
    )
    return dataset.sort_values("company_id").reset_index(drop=True)[TRAINING_COLUMNS]


def make_training_frame(path: Path | str | None = None) -> TrainingArtifacts:
    raw: RawData = load_raw_data(path)
    return build_training_frame(raw)


def build_training_frame(raw: RawData) -> TrainingArtifacts:
    """Label, select and derive the indicator for already-loaded raw data."""

    incomplete = find_incomplete_companies(raw.activity)
    if incomplete:
        logger.warning(
            "%d companies do not cover every month: %s", len(incomplete), incomplete[:10]
        )

    labels = label_churn(raw.activity)
    selected = select_training_rows(labels, raw.companies)
    dataset, indicator_skipped = derive_leading_indicator(selected, labels)

    skipped = {**labels.skipped, **indicator_skipped}
    positive_rate = float(dataset["churn"].mean()) if not dataset.empty else 0.0
    churned = dataset[dataset["churn"] == 1]
    indicator_rate = float(churned["leading_indicator"].mean()) if not churned.empty else 0.0

    return TrainingArtifacts(
        dataset=dataset,
        labels=labels,
        max_date=labels.max_date,
        positive_rate=positive_rate,
        indicator_rate=indicator_rate,
        skipped=skipped,
    )


def save_training_frame(artifacts: TrainingArtifacts) -> Path:
    ensure_directories()
    output_path = (
        Path(config.PROCESSED_DIR) / f"training_dataset_{artifacts.max_date.date()}.parquet"
    )
    artifacts.dataset.to_parquet(output_path, index=False)
    return output_path


def _check_one_row_per_company(
    rows: pd.DataFrame, activity: pd.DataFrame, skipped: set[str]
) -> None:
    expected = set(activity["company_id"]) - skipped
    counts = rows["company_id"].value_counts()

    duplicated = sorted(counts[counts > 1].index)
    absent = sorted(expected - set(counts.index))
    if duplicated or absent:
        raise LabelingInvariantError(
            "Every labeled company must yield exactly one training row; "
            f"duplicated: {duplicated[:10]}, absent: {absent[:10]}"
        )


def _print_summary(artifacts: TrainingArtifacts) -> None:
    summary = artifacts.labels.summary()
    print(f"Final observed month: {artifacts.max_date.date()}")
    print(
        f"Companies: {summary['companies']} "
        f"(churned {summary['churned']}, still active {summary['still_active']}, "
        f"never active {summary['no_activity']})"
    )
    print(f"Training rows: {len(artifacts.dataset)}; positive rate: {artifacts.positive_rate:.3f}")
    print(f"Leading indicator rate among churned: {artifacts.indicator_rate:.3f}")
    if artifacts.skipped:
        print(f"Skipped companies: {len(artifacts.skipped)}")
        for company_id, reason in sorted(artifacts.skipped.items()):
            print(f"  - {company_id}: {reason}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create churn training dataset.")
    parser.add_argument(
        "--data",
        type=str,
        default=None,
        help="Optional path to the wide activity CSV. Defaults to the configured raw file.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    artifacts = make_training_frame(args.data)
    save_path = save_training_frame(artifacts)
    print(f"Saved training dataset to {save_path}")
    _print_summary(artifacts)


if __name__ == "__main__":
    main()
