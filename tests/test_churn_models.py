from __future__ import annotations

import json

import joblib
import numpy as np
import pandas as pd
import pytest

from mandate_churn.churn_models import (
    INDICATOR_MODEL_FEATURES,
    InsufficientLabelsError,
    build_classifier,
    check_trainable,
    compare_models,
    fit_final_model,
    save_final_model,
    split_indices,
)
from mandate_churn.risk_scoring import score_companies
from mandate_churn.training_data import TrainingArtifacts


def _training_table(n: int = 60) -> pd.DataFrame:
    rng = np.random.default_rng(0)
    churn = np.array([1 if i % 3 == 0 else 0 for i in range(n)])
    return pd.DataFrame(
        {
            "company_id": [f"c{i:03d}" for i in range(n)],
            "incorporation_time": np.round(rng.uniform(0, 10, size=n) - churn * 2, 1),
            "vertical": pd.Categorical(rng.choice(["retail", "saas", "charity"], size=n)),
            "churn": churn,
            "leading_indicator": churn * (rng.uniform(size=n) > 0.3).astype(int),
        }
    )


def test_check_trainable_rejects_empty_table() -> None:
    with pytest.raises(InsufficientLabelsError, match="empty"):
        check_trainable(_training_table().iloc[0:0])


def test_check_trainable_rejects_single_class() -> None:
    dataset = _training_table()
    dataset["churn"] = 0

    with pytest.raises(InsufficientLabelsError, match="churn=0"):
        check_trainable(dataset)


def test_check_trainable_rejects_tiny_minority() -> None:
    dataset = _training_table()
    dataset["churn"] = 0
    dataset.loc[0, "churn"] = 1

    with pytest.raises(InsufficientLabelsError, match="Minority"):
        check_trainable(dataset)


def test_split_is_stratified_and_repeatable() -> None:
    dataset = _training_table()

    train_idx, test_idx = split_indices(dataset)
    again_train, again_test = split_indices(dataset.drop(columns=["leading_indicator"]))

    assert np.array_equal(test_idx, again_test)
    assert np.array_equal(train_idx, again_train)
    assert len(test_idx) == 12
    assert dataset["churn"].iloc[test_idx].sum() == 4


def test_unknown_model_kind() -> None:
    with pytest.raises(ValueError, match="Unknown model kind"):
        build_classifier("svm", INDICATOR_MODEL_FEATURES)


def test_compare_models_covers_every_family() -> None:
    comparison = compare_models(_training_table())

    assert len(comparison) == 6
    assert set(comparison["model"]) == {"logistic_regression", "decision_tree", "random_forest"}
    assert comparison["leading_indicator"].tolist() == [False] * 3 + [True] * 3
    assert (comparison[["tn", "fp", "fn", "tp"]].sum(axis=1) == 12).all()
    assert comparison["f1"].between(0, 1).all()

    logistic = comparison[comparison["model"] == "logistic_regression"]
    assert logistic["aic"].notna().all()
    assert comparison.loc[comparison["model"] != "logistic_regression", "aic"].isna().all()


def test_final_model_round_trip(tmp_config) -> None:
    dataset = _training_table()
    artifacts = TrainingArtifacts(
        dataset=dataset,
        labels=None,
        max_date=pd.Timestamp("2019-04-01"),
        positive_rate=float(dataset["churn"].mean()),
        indicator_rate=0.7,
        skipped={},
    )

    pipeline = fit_final_model(dataset)
    outputs = save_final_model(pipeline, artifacts)

    assert outputs.model_path.exists()
    assert outputs.comparison_path is None
    metadata = json.loads(outputs.metadata_path.read_text(encoding="utf-8"))
    assert metadata["features"] == INDICATOR_MODEL_FEATURES
    assert metadata["n_samples"] == 60

    scored = score_companies(dataset, outputs.model_path)
    assert len(scored) == 60
    assert scored["score"].is_monotonic_decreasing
    assert set(scored["risk_tier"]).issubset({"Low", "Medium", "High", "Very High"})


def test_score_companies_accepts_unseen_rows(tmp_config) -> None:
    dataset = _training_table()
    train, holdout = dataset.iloc[:45], dataset.iloc[45:].reset_index(drop=True)
    model_path = tmp_config.MODELS_DIR / "model.pkl"
    model_path.parent.mkdir(parents=True)
    joblib.dump(fit_final_model(train), model_path)

    scored = score_companies(holdout, model_path)

    assert sorted(scored["company_id"]) == sorted(holdout["company_id"])
    assert scored["score"].between(0, 1).all()
