"""
Train the two-tower model on MovieLens-100K and log everything to MLflow.

Run with:
    python -m latent_rank.cli.train_two_tower --epochs 10 --mode deep --tower_hidden 64
    mlflow ui
"""

from __future__ import annotations

import logging
from argparse import ArgumentParser
from pathlib import Path

import mlflow
import numpy as np
import pandas as pd
import torch

from latent_rank.config.paths import DATA_DIR, MLFLOW_EXPERIMENT
from latent_rank.data.encoders import dump_encoder_tmp
from latent_rank.data.movielens import MovieLensData, load_movielens
from latent_rank.engine.projection import Projection
from latent_rank.engine.registry import create_session
from latent_rank.engine.session import TwoTowerSession
from latent_rank.engine.train_loop import fit

log = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    ap = ArgumentParser()
    ap.add_argument("--data_dir", type=Path, default=DATA_DIR)
    ap.add_argument("--max_interactions", type=int, default=80_000)
    ap.add_argument("--emb_dim", type=int, default=32)
    ap.add_argument("--epochs", type=int, default=10)
    ap.add_argument("--batch", type=int, default=512)
    ap.add_argument("--lr", type=float, default=1e-3)
    ap.add_argument("--mode", choices=["shallow", "deep"], default="shallow")
    ap.add_argument("--tower_hidden", type=int, nargs="+", default=None)
    ap.add_argument("--tower_out", type=int, default=None)
    ap.add_argument("--loss", choices=["diagonal", "positive_first"], default="diagonal")
    ap.add_argument("--pca_samples", type=int, default=1000)
    ap.add_argument("--top_k", type=int, default=10)
    ap.add_argument("--seed", type=int, default=42)
    return ap


def session_kwargs(args, num_users: int, num_items: int) -> dict:
    kwargs = dict(num_users=num_users, num_items=num_items,
                  embedding_dim=args.emb_dim, learning_rate=args.lr,
                  mode=args.mode, loss_variant=args.loss, seed=args.seed)
    if args.mode == "deep":
        # towers default to one 64-unit layer and D' = D
        kwargs["tower_hidden_sizes"] = tuple(args.tower_hidden or (64,))
        kwargs["tower_output_dim"] = args.tower_out or args.emb_dim
    return kwargs


def projection_frame(proj: Projection, data: MovieLensData) -> pd.DataFrame:
    item_ids = data.item_encoder.inverse_transform(proj.sample_indices)
    df = pd.DataFrame({
        "item_idx": proj.sample_indices,
        "item_id": item_ids,
        "x": proj.coordinates[:, 0],
        "y": proj.coordinates[:, 1],
    })
    return df.join(data.items, on="item_id")


def recommend_for_random_user(session: TwoTowerSession, data: MovieLensData,
                              k: int, rng: np.random.Generator,
                              min_ratings: int = 20) -> pd.DataFrame | None:
    eligible = data.eligible_users(min_ratings=min_ratings)
    if len(eligible) == 0:
        log.warning("No users with %d+ ratings; skipping recommendation demo", min_ratings)
        return None

    user_id = int(rng.choice(eligible))
    user_idx = int(data.user_encoder.transform([user_id])[0])
    recs = session.recommend(user_idx, k=k, exclude=data.rated_item_indices(user_id))

    rec_df = pd.DataFrame({
        "item_idx": np.array([i for i, _ in recs], dtype=np.int64),
        "score": np.array([s for _, s in recs], dtype=np.float64),
    })
    rec_df["item_id"] = data.item_encoder.inverse_transform(rec_df["item_idx"].to_numpy()).astype(np.int64)
    rec_df = rec_df.join(data.items, on="item_id")

    log.info("User %d | top rated:\n%s", user_id, data.top_rated(user_id, k).to_string())
    log.info("User %d | recommended:\n%s", user_id, rec_df.to_string())
    rec_df.insert(0, "user_id", user_id)
    return rec_df


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    torch.manual_seed(args.seed)

    mlflow.set_experiment(MLFLOW_EXPERIMENT)
    with mlflow.start_run():
        mlflow.log_params(vars(args))
        data = load_movielens(args.data_dir, max_interactions=args.max_interactions)

        with create_session("two_tower", **session_kwargs(args, data.num_users, data.num_items)) as session:
            gen = torch.Generator().manual_seed(args.seed)
            history = fit(session, data.user_indices, data.item_indices,
                          epochs=args.epochs, batch_size=args.batch, generator=gen)
            if history:
                mlflow.log_metric("final_train_loss", history[-1])

            proj = session.project(args.pca_samples, generator=gen)
            mlflow.log_metric("pca_var_1", float(proj.explained_variance[0]))
            mlflow.log_metric("pca_var_2", float(proj.explained_variance[1]))
            mlflow.log_table(projection_frame(proj, data), artifact_file="item_projection.json")

            recs = recommend_for_random_user(session, data, args.top_k,
                                             np.random.default_rng(args.seed))
            if recs is not None:
                mlflow.log_table(recs, artifact_file="recommendations.json")

        # dump encoders so inference scripts can recover them
        mlflow.log_artifact(dump_encoder_tmp(data.user_encoder, "user_enc_"), artifact_path="artifacts")
        mlflow.log_artifact(dump_encoder_tmp(data.item_encoder, "item_enc_"), artifact_path="artifacts")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    main()
