"""
Build an NMF joblib model from a ratings table

Steps:
1. Read ratings (user_id, item_id, rating)
2. Optionally hold out a random share for MAE / RMSE
3. Train NMF → produces nmf.joblib
4. Print top-N items for a user, if asked
"""

import argparse
import logging
import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(PROJECT_ROOT)

from nmf_recommender.settings import settings
from nmf_recommender.model_utils import (
    build_nmf_model,
    load_nmf_artifact,
    recommend_items,
    ensure_directory,
    DATA_DIR,
    ARTIFACT_DIR,
)
from nmf_recommender.nmf import NMFConfig
from nmf_recommender.updates import UpdateStrategy


def setup_logging(level=settings.LOG_LEVEL, log_dir=settings.LOG_DIR):
    log_dir = ensure_directory(log_dir)
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_dir / "nmf.log"),
            logging.StreamHandler(sys.stdout),
        ],
    )


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Train a non-negative matrix factorization recommender.")
    p.add_argument("--ratings", type=str, default=str(DATA_DIR / "ratings.parquet"), help="Ratings file (parquet/csv/tsv)")
    p.add_argument("--out", type=str, default=str(ARTIFACT_DIR / "nmf.joblib"), help="Output artifact path")
    p.add_argument("-k", "--factors", type=int, default=settings.NMF_FACTORS, help="Latent factors")
    p.add_argument("--n-iters", type=int, default=settings.NMF_ITERATIONS, help="Maximum iterations")
    p.add_argument(
        "--strategy",
        choices=[s.value for s in UpdateStrategy],
        default=settings.NMF_STRATEGY,
        help="sparse: observed entries only; dense: full matrix products",
    )
    p.add_argument("--tol", type=float, default=settings.NMF_TOLERANCE, help="Early stopping tolerance on loss change (0 disables)")
    p.add_argument("--test-ratio", type=float, default=settings.NMF_TEST_RATIO, help="Hold-out share for evaluation")
    p.add_argument("--seed", type=int, default=settings.NMF_RANDOM_STATE, help="Random seed for the split")
    p.add_argument("--user", type=str, default=None, help="Print recommendations for this user id")
    p.add_argument("--top", type=int, default=10, help="Number of recommendations")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging()

    config = NMFConfig(
        num_factors=args.factors,
        num_iters=args.n_iters,
        init_value=settings.NMF_INIT_VALUE,
        epsilon=settings.NMF_EPSILON,
        strategy=args.strategy,
    )

    print(f"Training NMF ({config.strategy.value}, factors={config.num_factors})...")
    artifact_path = build_nmf_model(
        args.ratings,
        args.out,
        config=config,
        tol=args.tol,
        test_ratio=args.test_ratio,
        random_state=args.seed,
    )
    print("NMF model saved:", artifact_path)

    artifact = load_nmf_artifact(artifact_path)
    if artifact["metrics"]:
        print("MAE: {MAE:.4f}  RMSE: {RMSE:.4f}".format(**artifact["metrics"]))

    if args.user is not None:
        user_id = args.user
        # ids read from csv/parquet are often ints
        if user_id not in artifact["u_codes"] and user_id.isdigit():
            user_id = int(user_id)

        for item_id, score in recommend_items(artifact, user_id, args.top):
            print(f"{item_id}\t{score:.4f}")


if __name__ == "__main__":
    main()
