import numpy as np
import pytest
import torch

from latent_rank.engine.scoring import recommend_top_k
from latent_rank.errors import DimensionMismatchError, IndexOutOfRangeError, NumericalDivergenceError


def test_shallow_score_by_index_is_exact_dot_product(shallow_session):
    store = shallow_session.model.store
    users = store.user_emb.weight.detach().numpy()
    items = store.item_emb.weight.detach().numpy()

    for u in range(shallow_session.num_users):
        scores = shallow_session.score(u)
        assert scores.shape == (shallow_session.num_items,)
        np.testing.assert_allclose(scores, items @ users[u], atol=1e-5)


def test_shallow_score_by_vector(shallow_session):
    vec = np.array([1.0, -2.0, 0.5, 3.0], dtype=np.float32)
    items = shallow_session.model.store.item_emb.weight.detach().numpy()
    scores = shallow_session.score(vec)
    assert np.all(np.isfinite(scores))
    for i in range(shallow_session.num_items):
        assert scores[i] == pytest.approx(float(np.dot(vec, items[i])), abs=1e-5)


def test_deep_score_uses_tower_transformed_vectors(deep_session):
    user_vec = deep_session.user_vector(2)
    assert user_vec.shape == (3,)
    items = deep_session.item_vectors()
    assert items.shape == (deep_session.num_items, 3)

    np.testing.assert_allclose(deep_session.score(2), items @ user_vec, atol=1e-5)
    np.testing.assert_allclose(deep_session.score(user_vec), items @ user_vec, atol=1e-5)


def test_item_vectors_subset_matches_full_catalog(deep_session):
    full = deep_session.item_vectors()
    np.testing.assert_allclose(deep_session.item_vectors([5, 0, 5]), full[[5, 0, 5]], atol=1e-6)


def test_score_rejects_bad_queries(shallow_session, deep_session):
    with pytest.raises(IndexOutOfRangeError):
        shallow_session.score(6)
    with pytest.raises(IndexOutOfRangeError):
        shallow_session.score(-1)
    with pytest.raises(DimensionMismatchError):
        shallow_session.score(np.zeros(3))
    with pytest.raises(DimensionMismatchError):
        deep_session.score(np.zeros(4))  # raw width, not tower output width
    with pytest.raises(NumericalDivergenceError):
        shallow_session.score(np.array([np.nan, 0, 0, 0]))


def test_score_is_read_only(shallow_session):
    before = shallow_session.model.store.item_emb.weight.detach().clone()
    shallow_session.score(0)
    assert torch.equal(before, shallow_session.model.store.item_emb.weight)
    assert shallow_session.optimizer_steps == 0


def test_recommend_top_k_excludes_and_orders():
    scores = np.array([0.1, 0.9, 0.5, 0.9, -1.0, 0.7])
    assert recommend_top_k(scores, k=3, exclude=[1]) == [
        (3, pytest.approx(0.9)), (5, pytest.approx(0.7)), (2, pytest.approx(0.5))
    ]
    # ties keep catalog order
    assert [i for i, _ in recommend_top_k(scores, k=2)] == [1, 3]
    assert len(recommend_top_k(scores, k=10, exclude=[0, 1, 2])) == 3
    assert recommend_top_k(scores, k=0) == []


def test_session_recommend_never_returns_excluded(shallow_session):
    recs = shallow_session.recommend(0, k=5, exclude={0, 1, 2})
    assert len(recs) == 5
    assert not {i for i, _ in recs} & {0, 1, 2}
    assert [s for _, s in recs] == sorted((s for _, s in recs), reverse=True)


@pytest.mark.parametrize("index", [torch.tensor(3), np.array(3), np.int64(3)])
def test_score_accepts_integer_scalars_as_user_index(shallow_session, index):
    np.testing.assert_allclose(shallow_session.score(index), shallow_session.score(3), atol=1e-6)


def test_score_rejects_zero_d_float_tensor(shallow_session):
    with pytest.raises(DimensionMismatchError):
        shallow_session.score(torch.tensor(3.0))
