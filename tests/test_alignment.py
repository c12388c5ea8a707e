import numpy as np
import pytest

from twdtw.alignment import AlignmentEngine, cumulative_cost_matrix
from twdtw.config import ConfigurationError, DTWConfig
from twdtw.signatures import ObservationSeries

from conftest import make_series


def test_classic_dtw_matrices():
    engine = AlignmentEngine(DTWConfig(constraint_type="none"))
    series = make_series([1, 1, 2], [0, 0, 0])
    pattern = make_series([1, 2, 2], [0, 0, 0])

    local, cumulative = engine.cost_matrices(series, pattern)

    np.testing.assert_array_equal(local, [[0, 1, 1], [0, 1, 1], [1, 0, 0]])
    np.testing.assert_array_equal(cumulative, [[0, 1, 2], [0, 1, 2], [1, 0, 0]])
    assert engine.distance(series, pattern) == 0.0


def test_cumulative_cost_matrix_in_place():
    local = np.array([[1.0, 2.0], [3.0, 4.0]])
    result = cumulative_cost_matrix(local, out=local)

    assert result is local
    np.testing.assert_array_equal(local, [[1, 3], [4, 5]])


def test_cumulative_cost_matrix_single_cell_and_batch():
    np.testing.assert_array_equal(cumulative_cost_matrix(np.array([[2.5]])), [[2.5]])

    batch = np.stack([np.ones((2, 3)), 2 * np.ones((2, 3))])
    result = cumulative_cost_matrix(batch)
    np.testing.assert_array_equal(result[0], [[1, 2, 3], [2, 2, 3]])
    np.testing.assert_array_equal(result[1], 2 * result[0])


def test_time_weighted_identical_series_follow_diagonal():
    doy = [0, 30, 60]
    series = make_series([0, 5, 10], doy)
    engine = AlignmentEngine(DTWConfig(alpha=0.1, beta=50))

    expected = 3 * engine.weighting.weight(0.0)
    assert engine.distance(series, series) == pytest.approx(expected)


def test_time_constrained_forced_cell_hits_penalty():
    engine = AlignmentEngine(DTWConfig(constraint_type="time-constrained", beta=50, penalty=1e6))
    series = make_series([1, 1], [0, 100])
    pattern = make_series([1, 1], [0, 200])

    # the final cell is on every path and lies outside the window
    assert engine.distance(series, pattern) == pytest.approx(1e6, abs=1e-6)


def test_time_constrained_path_avoids_penalised_cells():
    engine = AlignmentEngine(DTWConfig(constraint_type="time-constrained", beta=10))
    series = make_series([0, 0, 0], [0, 10, 20])
    pattern = make_series([0, 0], [0, 20])

    local, _ = engine.cost_matrices(series, pattern)
    assert local[0, 1] == 1e6
    assert local[2, 0] == 1e6
    assert engine.distance(series, pattern) == 0.0


def test_batch_distance_matches_single_and_reuses_workspace():
    rng = np.random.default_rng(11)
    doy = np.array([0, 20, 45, 70])
    batch = np.stack([make_series(rng.uniform(0, 10, size=(2, 4)), doy) for _ in range(5)])
    pattern = make_series(rng.uniform(0, 10, size=(2, 3)), [5, 40, 80])
    engine = AlignmentEngine(DTWConfig())

    workspace = np.full((5, 4, 3), np.nan)
    distances = engine.batch_distance(batch, pattern, workspace=workspace)

    expected = [engine.distance(unit, pattern) for unit in batch]
    np.testing.assert_allclose(distances, expected)
    np.testing.assert_allclose(engine.batch_distance(batch, pattern, workspace=workspace), distances)


def test_accepts_observation_series():
    series = make_series([1, 1, 2], [0, 0, 0])
    pattern = make_series([1, 2, 2], [0, 0, 0])
    engine = AlignmentEngine(DTWConfig(constraint_type="none"))

    assert engine.distance(ObservationSeries(series), pattern) == engine.distance(series, pattern)


def test_exclude_first_step():
    engine = AlignmentEngine(DTWConfig(constraint_type="none", exclude_first_step=True))
    series = make_series([1, 1, 2], [0, 0, 0])
    pattern = make_series([1, 2, 2], [0, 0, 0])

    local, cumulative = engine.cost_matrices(series, pattern)

    np.testing.assert_array_equal(local, [[1, 1], [0, 0]])
    np.testing.assert_array_equal(cumulative, [[1, 2], [1, 1]])
    assert engine.distance(series, pattern) == 1.0


def test_angular_distance_first_row_and_column_are_free():
    engine = AlignmentEngine(DTWConfig(constraint_type="none", distance_type="angular"))
    series = make_series([[1, 2, 3], [3, 2, 1]], [0, 10, 20])
    pattern = make_series([[3, 2, 1], [1, 2, 3]], [0, 10, 20])

    local, _ = engine.cost_matrices(series, pattern)

    np.testing.assert_array_equal(local[0], 0.0)
    np.testing.assert_array_equal(local[:, 0], 0.0)
    assert np.all(local[1:, 1:] > 0)


def test_band_count_mismatch_rejected():
    engine = AlignmentEngine()
    with pytest.raises(ConfigurationError, match="Band count"):
        engine.distance(make_series([[1, 2], [3, 4]], [0, 1]), make_series([1, 2], [0, 1]))


def test_empty_sequences_rejected():
    engine = AlignmentEngine()
    with pytest.raises(ConfigurationError):
        engine.distance(np.zeros((2, 0)), make_series([1, 2], [0, 1]))


def test_declared_sizes_checked():
    engine = AlignmentEngine(DTWConfig(timeseries_len=4))
    with pytest.raises(ConfigurationError, match="timeseries_len"):
        engine.distance(make_series([1, 2, 3], [0, 1, 2]), make_series([1, 2, 3], [0, 1, 2]))


def test_exclude_first_step_needs_two_steps():
    engine = AlignmentEngine(DTWConfig(exclude_first_step=True))
    with pytest.raises(ConfigurationError):
        engine.distance(make_series([1], [0]), make_series([1, 2], [0, 1]))
