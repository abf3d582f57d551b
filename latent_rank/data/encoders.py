"""Thin wrappers so id encoders can be MLflow-serialised transparently."""
import tempfile

import joblib
from sklearn.preprocessing import LabelEncoder


def dump_encoder_tmp(enc: LabelEncoder, prefix: str = "encoder_") -> str:
    with tempfile.NamedTemporaryFile(prefix=prefix, suffix=".joblib", delete=False) as tmp:
        joblib.dump(enc, tmp.name)
    return tmp.name


def load_encoder(path: str) -> LabelEncoder:
    return joblib.load(path)
