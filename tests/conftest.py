import pytest

from latent_rank.config.model_config import TwoTowerConfig
from latent_rank.engine.session import TwoTowerSession


@pytest.fixture
def shallow_config():
    return TwoTowerConfig(num_users=6, num_items=8, embedding_dim=4, learning_rate=0.01, seed=0)


@pytest.fixture
def deep_config():
    return TwoTowerConfig(
        num_users=6,
        num_items=8,
        embedding_dim=4,
        learning_rate=0.01,
        mode="deep",
        tower_hidden_sizes=(8,),
        tower_output_dim=3,
        seed=0,
    )


@pytest.fixture
def shallow_session(shallow_config):
    session = TwoTowerSession(shallow_config)
    yield session
    session.dispose()


@pytest.fixture
def deep_session(deep_config):
    session = TwoTowerSession(deep_config)
    yield session
    session.dispose()


U_DATA = """\
1\t10\t5\t881250949
1\t20\t3\t881250950
2\t10\t4\t881250951
2\t30\t1\t881250952
3\t20\t2\t881250953
3\t99\t5\t881250954
1\t30\t4\t881250955
"""

U_ITEM = """\
10|Toy Story (1995)|01-Jan-1995||http://x|0|0
20|GoldenEye (1995)|01-Jan-1995||http://x|0|0
30|Untitled Festival Cut|01-Jan-1995||http://x|0|0
40|Never Rated (1996)|01-Jan-1996||http://x|0|0
"""


@pytest.fixture
def movielens_dir(tmp_path):
    (tmp_path / "u.data").write_text(U_DATA, encoding="latin-1")
    (tmp_path / "u.item").write_text(U_ITEM, encoding="latin-1")
    return tmp_path
