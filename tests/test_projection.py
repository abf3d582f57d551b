import numpy as np
import pytest
import torch

from latent_rank.config.model_config import TwoTowerConfig
from latent_rank.engine.projection import top_components
from latent_rank.engine.session import TwoTowerSession


def _set_items(session, rows):
    with torch.no_grad():
        session.model.store.item_emb.weight.copy_(torch.as_tensor(rows, dtype=torch.float32))


@pytest.mark.parametrize("sample_size,expected", [(3, 3), (8, 8), (1000, 8)])
def test_projection_lengths_and_index_range(shallow_session, sample_size, expected):
    proj = shallow_session.project(sample_size)
    assert proj.coordinates.shape == (expected, 2)
    assert proj.sample_indices.shape == (expected,)
    assert len(proj) == expected
    assert proj.sample_indices.min() >= 0
    assert proj.sample_indices.max() < shallow_session.num_items
    assert np.all(np.isfinite(proj.coordinates))


def test_points_on_a_line_collapse_onto_first_axis():
    cfg = TwoTowerConfig(num_users=2, num_items=10, embedding_dim=3, seed=0)
    direction = np.array([0.6, 0.8, 0.0])
    with TwoTowerSession(cfg) as session:
        _set_items(session, np.arange(10)[:, None] * direction[None, :])
        proj = session.project(10, generator=torch.Generator().manual_seed(3))

    sample = np.arange(10)[proj.sample_indices][:, None] * direction[None, :]
    total_var = sample.var(axis=0, ddof=1).sum()
    assert total_var > 0

    assert proj.coordinates[:, 0].var(ddof=1) == pytest.approx(total_var, rel=1e-5)
    assert proj.coordinates[:, 1].var(ddof=1) == pytest.approx(0.0, abs=1e-8)
    assert proj.explained_variance[0] == pytest.approx(total_var, rel=1e-5)
    assert proj.explained_variance[1] == pytest.approx(0.0, abs=1e-8)


def test_coordinates_are_centered_projections(shallow_session):
    proj = shallow_session.project(8, generator=torch.Generator().manual_seed(0))
    np.testing.assert_allclose(proj.coordinates.mean(axis=0), 0.0, atol=1e-6)
    assert proj.explained_variance[0] >= proj.explained_variance[1] >= 0


def test_single_item_catalog_returns_zero_coordinates():
    with TwoTowerSession(TwoTowerConfig(num_users=1, num_items=1, embedding_dim=4)) as session:
        proj = session.project(5)
    assert proj.coordinates.shape == (1, 2)
    np.testing.assert_array_equal(proj.coordinates, 0.0)
    np.testing.assert_array_equal(proj.sample_indices, [0])


def test_identical_vectors_return_zero_coordinates():
    with TwoTowerSession(TwoTowerConfig(num_users=1, num_items=4, embedding_dim=3)) as session:
        _set_items(session, np.ones((4, 3)))
        proj = session.project(4)
    np.testing.assert_allclose(proj.coordinates, 0.0, atol=1e-12)
    np.testing.assert_allclose(proj.explained_variance, 0.0, atol=1e-12)


def test_one_dimensional_space_pads_second_axis():
    with TwoTowerSession(TwoTowerConfig(num_users=1, num_items=5, embedding_dim=1)) as session:
        proj = session.project(5)
    assert proj.coordinates.shape == (5, 2)
    np.testing.assert_array_equal(proj.coordinates[:, 1], 0.0)


def test_deep_mode_projects_tower_output(deep_session):
    proj = deep_session.project(6)
    assert proj.coordinates.shape == (6, 2)
    assert np.all(np.isfinite(proj.coordinates))


def test_generator_makes_sampling_repeatable(shallow_session):
    a = shallow_session.project(5, generator=torch.Generator().manual_seed(11))
    b = shallow_session.project(5, generator=torch.Generator().manual_seed(11))
    np.testing.assert_array_equal(a.sample_indices, b.sample_indices)
    np.testing.assert_allclose(a.coordinates, b.coordinates)


@pytest.mark.parametrize("bad", [0, -3, 2.5, True])
def test_invalid_sample_size(shallow_session, bad):
    with pytest.raises(ValueError):
        shallow_session.project(bad)


def test_top_components_order_and_sign():
    cov = torch.diag(torch.tensor([1.0, 5.0, 3.0], dtype=torch.float64))
    vecs, vals = top_components(cov, k=2)
    torch.testing.assert_close(vals, torch.tensor([5.0, 3.0], dtype=torch.float64))
    torch.testing.assert_close(vecs[:, 0].abs(), torch.tensor([0.0, 1.0, 0.0], dtype=torch.float64))
    torch.testing.assert_close(vecs[:, 1].abs(), torch.tensor([0.0, 0.0, 1.0], dtype=torch.float64))
    assert vecs[1, 0] > 0 and vecs[2, 1] > 0
