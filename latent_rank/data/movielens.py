# ------------------------------------------------------------
# data/movielens.py
# ------------------------------------------------------------
"""MovieLens-100K loader: raw ``u.data`` / ``u.item`` -> dense index pairs.

Identifier remapping happens here, never inside the model: the engine only
sees indices in ``[0, num_users)`` / ``[0, num_items)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.preprocessing import LabelEncoder

log = logging.getLogger(__name__)

RATING_COLUMNS = ["user_id", "item_id", "rating", "timestamp"]
TITLE_YEAR = r"^(?P<title>.*) \((?P<year>\d{4})\)$"


@dataclass
class MovieLensData:
    interactions: pd.DataFrame  # user_id, item_id, rating, timestamp, user_idx, item_idx
    items: pd.DataFrame         # indexed by item_id: title, year
    user_encoder: LabelEncoder
    item_encoder: LabelEncoder

    @property
    def num_users(self) -> int:
        return len(self.user_encoder.classes_)

    @property
    def num_items(self) -> int:
        return len(self.item_encoder.classes_)

    @property
    def user_indices(self) -> np.ndarray:
        return self.interactions["user_idx"].to_numpy()

    @property
    def item_indices(self) -> np.ndarray:
        return self.interactions["item_idx"].to_numpy()

    def eligible_users(self, min_ratings: int = 20) -> np.ndarray:
        counts = self.interactions["user_id"].value_counts()
        return np.sort(counts[counts >= min_ratings].index.to_numpy())

    def top_rated(self, user_id: int, k: int = 10) -> pd.DataFrame:
        rows = self.interactions[self.interactions["user_id"] == user_id]
        rows = rows.sort_values("rating", ascending=False, kind="stable").head(k)
        return rows[["item_id", "rating"]].join(self.items, on="item_id").reset_index(drop=True)

    def rated_item_indices(self, user_id: int) -> np.ndarray:
        return self.interactions.loc[self.interactions["user_id"] == user_id, "item_idx"].to_numpy()


def load_items(path: Path) -> pd.DataFrame:
    raw = pd.read_csv(path, sep="|", header=None, encoding="latin-1", usecols=[0, 1])
    raw = raw.rename(columns={0: "item_id", 1: "raw_title"})
    parsed = raw["raw_title"].astype(str).str.extract(TITLE_YEAR)
    items = pd.DataFrame({
        "item_id": raw["item_id"].astype(int),
        "title": parsed["title"].fillna(raw["raw_title"].astype(str)),
        "year": parsed["year"].fillna("N/A"),
    })
    return items.set_index("item_id")


def load_ratings(path: Path, max_interactions: int | None = None) -> pd.DataFrame:
    df = pd.read_csv(path, sep="\t", header=None, names=RATING_COLUMNS, nrows=max_interactions)
    return df.astype({"user_id": int, "item_id": int, "rating": int, "timestamp": int})


def load_movielens(data_dir: Path, max_interactions: int | None = 80_000) -> MovieLensData:
    data_dir = Path(data_dir)
    ratings_path, items_path = data_dir / "u.data", data_dir / "u.item"
    for p in (ratings_path, items_path):
        if not p.exists():
            raise FileNotFoundError(f"MovieLens file not found at {p}.")

    items = load_items(items_path)
    ratings = load_ratings(ratings_path, max_interactions)

    known = ratings["item_id"].isin(items.index)
    if not known.all():
        log.warning("Dropping %d interactions with items missing from catalog", int((~known).sum()))
    ratings = ratings[known].reset_index(drop=True)
    if ratings.empty:
        raise ValueError(f"No usable interactions in {ratings_path}")

    u_enc, i_enc = LabelEncoder(), LabelEncoder()
    ratings["user_idx"] = u_enc.fit_transform(ratings["user_id"])
    ratings["item_idx"] = i_enc.fit_transform(ratings["item_id"])

    log.info("MovieLens loaded | %d users | %d items | %d interactions",
             len(u_enc.classes_), len(i_enc.classes_), len(ratings))
    return MovieLensData(ratings, items, u_enc, i_enc)
