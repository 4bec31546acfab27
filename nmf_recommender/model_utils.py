"""
model_utils.py
Utility helpers around the NMF recommender.

This module handles:
  • Loading user/item/rating tables (parquet, csv, whitespace or "::" text)
  • Mapping raw ids → matrix indices and building the sparse rating matrix
  • Random hold-out split for evaluation
  • Training NMF and saving / loading the joblib artifact
  • MAE / RMSE evaluation and top-N recommendation
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd

from .convergence import LossDeltaConvergence
from .matrix import DenseMatrix, SparseMatrix
from .nmf import NMF, NMFConfig

LOGGER = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# PATHS
# ─────────────────────────────────────────────

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"
ARTIFACT_DIR = BASE_DIR / "artifacts"

RATING_COLUMNS = ["user_id", "item_id", "rating"]

# user item rating [timestamp], split on whitespace or "::"
TEXT_SUFFIXES = (".tsv", ".txt", ".dat", ".data")
TEXT_SEP = r"::|\s+"

# ─────────────────────────────────────────────
# CUSTOM EXCEPTIONS
# ─────────────────────────────────────────────

class MissingDataError(RuntimeError):
    """Raised when the ratings file is missing, empty or malformed."""
    pass

class MissingArtifactError(RuntimeError):
    """Raised when a trained NMF artifact is missing."""
    pass


def _resolve_path(path):
    return Path(path).expanduser().resolve()


def ensure_directory(path):
    p = _resolve_path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p

# ─────────────────────────────────────────────
# RATINGS
# ─────────────────────────────────────────────

def _has_header(path: Path) -> bool:
    """True when the third field of the first line is not a number."""
    with open(path, "r", encoding="utf-8") as f:
        fields = re.split(TEXT_SEP, f.readline().strip())
    if len(fields) < 3:
        return False
    try:
        float(fields[2])
    except ValueError:
        return True
    return False


def _read_text_ratings(path: Path) -> pd.DataFrame:
    header = 0 if _has_header(path) else None
    try:
        df = pd.read_csv(path, sep=TEXT_SEP, engine="python", header=header)
    except pd.errors.EmptyDataError as exc:
        raise MissingDataError(f"{path.name} is empty") from exc

    if df.shape[1] < 3:
        raise MissingDataError(
            f"{path.name} needs at least 3 fields per line (user, item, rating), got {df.shape[1]}"
        )

    df = df.iloc[:, :3]
    df.columns = RATING_COLUMNS
    return df


def load_ratings(path: Path | str = DATA_DIR / "ratings.parquet") -> pd.DataFrame:
    """
    Read a ratings table with columns user_id, item_id, rating.
    Non-positive ratings are unobserved and dropped.
    """
    path = _resolve_path(path)

    if not path.exists():
        raise MissingDataError(f"Ratings not found: {path}")

    if path.suffix == ".parquet":
        df = pd.read_parquet(path)
    elif path.suffix == ".csv":
        df = pd.read_csv(path)
    elif path.suffix in TEXT_SUFFIXES:
        # headerless unless the first line has a non-numeric rating field
        df = _read_text_ratings(path)
    else:
        raise ValueError("Ratings must be parquet, csv or whitespace / \"::\" separated text")

    missing = [c for c in RATING_COLUMNS if c not in df.columns]
    if missing:
        raise MissingDataError(f"{path.name} is missing columns: {missing}")

    df = df[RATING_COLUMNS].copy()
    df["rating"] = pd.to_numeric(df["rating"], errors="coerce")

    before = len(df)
    df = df[df["rating"] > 0].reset_index(drop=True)
    if len(df) < before:
        LOGGER.info("Dropped %d non-positive or invalid ratings", before - len(df))

    if df.empty:
        raise MissingDataError(f"No observed ratings in {path}")

    return df


def encode_ratings(
    df: pd.DataFrame,
    u_codes: Optional[Dict] = None,
    i_codes: Optional[Dict] = None,
) -> Tuple[SparseMatrix, Dict, Dict]:
    """
    Build the users × items matrix. When code maps are given (test data),
    rows whose user or item is unknown to them are skipped.
    """
    # a re-rated cell keeps its latest rating
    df = df.drop_duplicates(["user_id", "item_id"], keep="last")

    if u_codes is None:
        u_codes = {u: i for i, u in enumerate(df["user_id"].unique())}
    if i_codes is None:
        i_codes = {t: i for i, t in enumerate(df["item_id"].unique())}

    u = df["user_id"].map(u_codes)
    i = df["item_id"].map(i_codes)
    known = u.notna() & i.notna()

    if not known.all():
        LOGGER.info("Skipping %d ratings with unknown user/item ids", int((~known).sum()))

    matrix = SparseMatrix.from_entries(
        u[known].astype(int).to_numpy(),
        i[known].astype(int).to_numpy(),
        df.loc[known, "rating"].to_numpy(),
        shape=(len(u_codes), len(i_codes)),
    )
    return matrix, u_codes, i_codes


def split_ratings(df: pd.DataFrame, test_ratio: float = 0.2, random_state: int = 42):
    """Random hold-out split → (train_df, test_df)."""
    if not 0 <= test_ratio < 1:
        raise ValueError(f"test_ratio must be in [0, 1), got {test_ratio}")

    test = df.sample(frac=test_ratio, random_state=random_state)
    train = df.drop(index=test.index)
    return train.reset_index(drop=True), test.reset_index(drop=True)

# ─────────────────────────────────────────────
# EVALUATION + TOP-N
# ─────────────────────────────────────────────

def evaluate(model: NMF, test_matrix: SparseMatrix) -> Dict[str, float]:
    """MAE / RMSE of model predictions over the observed test entries."""
    abs_err = 0.0
    sq_err = 0.0
    count = 0

    for u, j, ruj in test_matrix:
        if ruj <= 0:
            continue
        euj = model.predict(u, j) - ruj
        abs_err += abs(euj)
        sq_err += euj * euj
        count += 1

    if count == 0:
        return {"MAE": math.nan, "RMSE": math.nan, "count": 0}

    return {
        "MAE": abs_err / count,
        "RMSE": math.sqrt(sq_err / count),
        "count": count,
    }


def recommend(model: NMF, u: int, k: int = 10, exclude_seen: bool = True) -> List[Tuple[int, float]]:
    """Top-k (item index, score) pairs for user index u."""
    scores = np.array(model.predict_row(u), dtype=np.float64)

    if exclude_seen:
        scores[model.V.row(u).index] = -np.inf

    k = min(k, int(np.isfinite(scores).sum()))
    if k <= 0:
        return []

    top = np.argpartition(-scores, k - 1)[:k]
    top = top[np.argsort(-scores[top], kind="stable")]
    return [(int(j), float(scores[j])) for j in top]

# ─────────────────────────────────────────────
# TRAIN + ARTIFACTS
# ─────────────────────────────────────────────

def build_nmf_model(
    ratings_path: Path | str = DATA_DIR / "ratings.parquet",
    artifact_path: Path | str = ARTIFACT_DIR / "nmf.joblib",
    *,
    config: Optional[NMFConfig] = None,
    tol: float = 1e-5,
    test_ratio: float = 0.0,
    random_state: int = 42,
):
    config = config or NMFConfig()
    df = load_ratings(ratings_path)

    if test_ratio > 0:
        train_df, test_df = split_ratings(df, test_ratio, random_state)
    else:
        train_df, test_df = df, None

    train, u_codes, i_codes = encode_ratings(train_df)

    model = NMF(train, config, convergence=LossDeltaConvergence(tol))
    model.fit()

    metrics = {}
    if test_df is not None and not test_df.empty:
        test, _, _ = encode_ratings(test_df, u_codes, i_codes)
        metrics = evaluate(model, test)
        LOGGER.info(
            "Hold-out MAE = %.4f, RMSE = %.4f over %d ratings",
            metrics["MAE"], metrics["RMSE"], metrics["count"],
        )

    artifact = _resolve_path(artifact_path)
    ensure_directory(artifact.parent)
    joblib.dump(
        {
            "W": model.W.data,
            "H": model.H.data,
            "train": train.csr,
            "u_codes": u_codes,
            "i_codes": i_codes,
            "loss": model.loss,
            "metrics": metrics,
            "config": config.model_dump(mode="json"),
        },
        artifact,
    )

    LOGGER.info("NMF model saved → %s", artifact)
    return artifact


def load_nmf_artifact(path=ARTIFACT_DIR / "nmf.joblib"):
    path = _resolve_path(path)
    if not path.exists():
        raise MissingArtifactError(f"NMF artifact not found: {path}")
    return joblib.load(path)


def model_from_artifact(artifact: dict) -> NMF:
    """Rebuild a scoring-ready engine from saved factors (no retraining)."""
    model = NMF(SparseMatrix(artifact["train"]), NMFConfig(**artifact["config"]))
    model.W = DenseMatrix(artifact["W"])
    model.H = DenseMatrix(artifact["H"])
    model.V = model.train_matrix
    model.loss = model.errs = artifact["loss"]
    return model


def recommend_items(artifact: dict, user_id, k: int = 10) -> List[Tuple[object, float]]:
    """Top-k (raw item id, score) for a raw user id; unknown users get []."""
    u = artifact["u_codes"].get(user_id)
    if u is None:
        LOGGER.warning("Unknown user id: %s", user_id)
        return []

    model = model_from_artifact(artifact)
    item_ids = {i: t for t, i in artifact["i_codes"].items()}
    return [(item_ids[j], score) for j, score in recommend(model, u, k)]


__all__ = [
    "MissingDataError",
    "MissingArtifactError",
    "load_ratings",
    "encode_ratings",
    "split_ratings",
    "evaluate",
    "recommend",
    "build_nmf_model",
    "load_nmf_artifact",
    "model_from_artifact",
    "recommend_items",
    "ensure_directory",
    "DATA_DIR",
    "ARTIFACT_DIR",
]
