# src/mandate_churn/churn_models.py
"""
Train and compare churn classifiers on the one-row-per-company training table,
with and without the leading indicator, and persist the final model.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from pathlib import Path

import joblib
import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.impute import SimpleImputer
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import confusion_matrix, f1_score, log_loss, precision_score, recall_score
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler
from sklearn.tree import DecisionTreeClassifier

from . import config
from .training_data import TrainingArtifacts, make_training_frame, save_training_frame

logger = logging.getLogger(__name__)

NUMERIC_FEATURES = ["incorporation_time"]
CATEGORICAL_FEATURES = ["vertical"]
INDICATOR_FEATURES = ["leading_indicator"]

BASE_FEATURES = NUMERIC_FEATURES + CATEGORICAL_FEATURES
INDICATOR_MODEL_FEATURES = BASE_FEATURES + INDICATOR_FEATURES

MODEL_KINDS = ("logistic_regression", "decision_tree", "random_forest")


class InsufficientLabelsError(ValueError):
    """The training table cannot support a meaningful classifier."""


@dataclass(frozen=True)
class ModelReport:
    model: str
    features: tuple[str, ...]
    precision: float
    recall: float
    f1: float
    confusion: np.ndarray
    aic: float | None = None

    def as_row(self) -> dict[str, object]:
        tn, fp, fn, tp = self.confusion.ravel()
        return {
            "model": self.model,
            "leading_indicator": "leading_indicator" in self.features,
            "precision": self.precision,
            "recall": self.recall,
            "f1": self.f1,
            "aic": self.aic,
            "tn": int(tn),
            "fp": int(fp),
            "fn": int(fn),
            "tp": int(tp),
        }


@dataclass(frozen=True)
class ModelOutputs:
    model_path: Path
    metadata_path: Path
    comparison_path: Path | None


def check_trainable(dataset: pd.DataFrame) -> None:
    """Fail fast on tables that would only produce a degenerate classifier."""

    if dataset.empty:
        raise InsufficientLabelsError("Training table is empty; no companies were labeled.")

    counts = dataset["churn"].value_counts()
    if len(counts) < 2:
        only = int(counts.index[0])
        raise InsufficientLabelsError(
            f"Training table only contains churn={only} rows ({int(counts.iloc[0])}); "
            "both churned and retained companies are required."
        )
    if int(counts.min()) < 2:
        raise InsufficientLabelsError(
            f"Minority class has {int(counts.min())} row(s); "
            "at least 2 are needed for a stratified split."
        )


def split_indices(
    dataset: pd.DataFrame, test_size: float | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """Stratified train/test row positions, reused for every model variant."""

    check_trainable(dataset)
    positions = np.arange(len(dataset))
    train_idx, test_idx = train_test_split(
        positions,
        test_size=config.TEST_SIZE if test_size is None else test_size,
        stratify=dataset["churn"].to_numpy(),
        random_state=config.RANDOM_STATE,
    )
    return np.sort(train_idx), np.sort(test_idx)


def build_classifier(kind: str, features: list[str] | tuple[str, ...]) -> Pipeline:
    features = list(features)
    numeric = [f for f in NUMERIC_FEATURES if f in features]
    categorical = [f for f in CATEGORICAL_FEATURES if f in features]
    indicator = [f for f in INDICATOR_FEATURES if f in features]

    if kind == "logistic_regression":
        # treatment coding so AIC counts one parameter per non-baseline level
        encoder = OneHotEncoder(drop="first", handle_unknown="ignore")
        # effectively unpenalized, matching a plain maximum-likelihood fit
        model = LogisticRegression(C=1e6, max_iter=1000, random_state=config.RANDOM_STATE)
    elif kind == "decision_tree":
        encoder = OneHotEncoder(handle_unknown="ignore")
        model = DecisionTreeClassifier(min_samples_leaf=5, random_state=config.RANDOM_STATE)
    elif kind == "random_forest":
        encoder = OneHotEncoder(handle_unknown="ignore")
        model = RandomForestClassifier(
            n_estimators=config.RANDOM_FOREST_TREES,
            min_samples_leaf=2,
            random_state=config.RANDOM_STATE,
            n_jobs=-1,
        )
    else:
        raise ValueError(f"Unknown model kind {kind!r}; expected one of {MODEL_KINDS}")

    transformers = [
        (
            "num",
            Pipeline([("impute", SimpleImputer(strategy="median")), ("scale", StandardScaler())]),
            numeric,
        ),
        ("cat", encoder, categorical),
    ]
    if indicator:
        transformers.append(("flag", "passthrough", indicator))

    return Pipeline([("prep", ColumnTransformer(transformers)), ("model", model)])


def logistic_aic(pipeline: Pipeline, X: pd.DataFrame, y: pd.Series) -> float:
    """Akaike information criterion of a fitted logistic pipeline."""

    model = pipeline.named_steps["model"]
    probabilities = pipeline.predict_proba(X)[:, 1]
    log_likelihood = -log_loss(y, probabilities, labels=[0, 1], normalize=False)
    n_params = model.coef_.size + model.intercept_.size
    return float(2 * n_params - 2 * log_likelihood)


def evaluate_classifier(
    kind: str,
    dataset: pd.DataFrame,
    features: list[str] | tuple[str, ...],
    train_idx: np.ndarray,
    test_idx: np.ndarray,
) -> ModelReport:
    X = dataset[list(features)]
    y = dataset["churn"].astype(int)
    x_train, x_test = X.iloc[train_idx], X.iloc[test_idx]
    y_train, y_test = y.iloc[train_idx], y.iloc[test_idx]

    pipeline = build_classifier(kind, features)
    pipeline.fit(x_train, y_train)
    predicted = pipeline.predict(x_test)

    aic = logistic_aic(pipeline, x_train, y_train) if kind == "logistic_regression" else None
    return ModelReport(
        model=kind,
        features=tuple(features),
        precision=float(precision_score(y_test, predicted, zero_division=0)),
        recall=float(recall_score(y_test, predicted, zero_division=0)),
        f1=float(f1_score(y_test, predicted, zero_division=0)),
        confusion=confusion_matrix(y_test, predicted, labels=[0, 1]),
        aic=aic,
    )


def compare_models(dataset: pd.DataFrame, kinds: tuple[str, ...] = MODEL_KINDS) -> pd.DataFrame:
    """Evaluate every model kind with and without the indicator on one split."""

    train_idx, test_idx = split_indices(dataset)
    print(
        f"Training samples: {len(train_idx)}; test samples: {len(test_idx)} "
        f"(positive rate {float(dataset['churn'].mean()):.3f})"
    )

    rows = []
    for features in (BASE_FEATURES, INDICATOR_MODEL_FEATURES):
        for kind in kinds:
            report = evaluate_classifier(kind, dataset, features, train_idx, test_idx)
            rows.append(report.as_row())
    return pd.DataFrame(rows)


def fit_final_model(dataset: pd.DataFrame, kind: str | None = None) -> Pipeline:
    check_trainable(dataset)
    kind = kind or config.FINAL_MODEL
    pipeline = build_classifier(kind, INDICATOR_MODEL_FEATURES)
    pipeline.fit(dataset[INDICATOR_MODEL_FEATURES], dataset["churn"].astype(int))
    return pipeline


def save_final_model(
    pipeline: Pipeline,
    artifacts: TrainingArtifacts,
    comparison: pd.DataFrame | None = None,
) -> ModelOutputs:
    model_dir = Path(config.MODELS_DIR)
    model_dir.mkdir(parents=True, exist_ok=True)
    stamp = artifacts.max_date.date()

    model_path = model_dir / f"churn_model_{stamp}.pkl"
    metadata_path = model_dir / f"model_metadata_{stamp}.json"
    joblib.dump(pipeline, model_path)

    comparison_path = None
    if comparison is not None:
        Path(config.REPORTS_DIR).mkdir(parents=True, exist_ok=True)
        comparison_path = Path(config.REPORTS_DIR) / f"model_comparison_{stamp}.csv"
        comparison.to_csv(comparison_path, index=False)

    dataset = artifacts.dataset
    metadata: dict[str, object] = {
        "max_date": stamp.isoformat(),
        "model": type(pipeline.named_steps["model"]).__name__,
        "n_samples": int(len(dataset)),
        "positive_rate": artifacts.positive_rate,
        "leading_indicator_rate": artifacts.indicator_rate,
        "features": INDICATOR_MODEL_FEATURES,
        "skipped_companies": sorted(artifacts.skipped),
    }
    metadata_path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")

    return ModelOutputs(
        model_path=model_path,
        metadata_path=metadata_path,
        comparison_path=comparison_path,
    )


def run(
    data_path: Path | str | None = None, fit_final: bool = True
) -> tuple[TrainingArtifacts, pd.DataFrame, ModelOutputs | None]:
    artifacts = make_training_frame(data_path)
    save_training_frame(artifacts)

    comparison = compare_models(artifacts.dataset)
    print(comparison.to_string(index=False, float_format=lambda v: f"{v:.3f}"))

    if not fit_final:
        return artifacts, comparison, None

    pipeline = fit_final_model(artifacts.dataset)
    outputs = save_final_model(pipeline, artifacts, comparison)
    print(f"Saved final model to {outputs.model_path}")

    from .risk_scoring import run as run_risk_scoring

    run_risk_scoring(artifacts.dataset, outputs.model_path, artifacts.max_date)
    return artifacts, comparison, outputs


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Compare churn classifiers and save the final model.")
    parser.add_argument(
        "--data",
        type=str,
        default=None,
        help="Optional path to the wide activity CSV. Defaults to the configured raw file.",
    )
    parser.add_argument(
        "--skip-final",
        action="store_true",
        help="Only compare models; do not fit and persist the final model.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    try:
        run(args.data, fit_final=not args.skip_final)
    except InsufficientLabelsError as exc:
        logger.error("Model training aborted: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
