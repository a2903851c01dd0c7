from pathlib import Path

# === Core Directories ===
RAW_DIR = Path("data/raw")
RAW_FILENAME = "company_activity.csv"
PROCESSED_DIR = Path("data/processed")
REPORTS_DIR = Path("reports")
MODELS_DIR = Path("models")

# === Features ===
REFERENCE_DATE = "2020-01-01"  # incorporation_time is measured up to this date
DAYS_PER_YEAR = 365.25

# === Model Settings ===
RANDOM_STATE = 42
TEST_SIZE = 0.20
FINAL_MODEL = "logistic_regression"
RANDOM_FOREST_TREES = 200

# === Scoring ===
RISK_TIER_BINS = [0.3, 0.5, 0.7]
RISK_TIER_LABELS = ["Low", "Medium", "High", "Very High"]
