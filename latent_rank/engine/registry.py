"""Simple factory so CLI scripts stay tiny."""
from latent_rank.config.model_config import TwoTowerConfig
from latent_rank.engine.session import TwoTowerSession


def create_session(name: str, device="cpu", **kwargs) -> TwoTowerSession:
    name = name.lower()
    if name == "two_tower":
        return TwoTowerSession(TwoTowerConfig(**kwargs), device=device)
    raise ValueError(f"Unknown model: {name}")
