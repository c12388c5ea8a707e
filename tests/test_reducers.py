import itertools

import numpy as np
import pytest

from twdtw.alignment import AlignmentEngine
from twdtw.config import ConfigurationError, DTWConfig
from twdtw.reducers import ClassificationResult, ClassReducer, PatternReducer

from conftest import make_series

DOY = [0, 30, 60, 90]


def instances():
    exact = make_series([1, 4, 6, 2], DOY)
    near = make_series([1, 5, 6, 2], DOY)
    far = make_series([9, 9, 9, 9], DOY)
    return exact, near, far


@pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
def test_pattern_reducer_selects_exact_match(order):
    reducer = PatternReducer(AlignmentEngine(DTWConfig(constraint_type="none")))
    patterns = np.stack([instances()[i] for i in order])
    series = instances()[0]

    distances, best = reducer.reduce(1, patterns, series[None, ...])

    assert distances[0] == 0.0
    assert best[0] == order.index(0)
    assert reducer.distance(1, patterns, series) == 0.0


def test_pattern_reducer_tie_keeps_first_instance():
    reducer = PatternReducer(AlignmentEngine(DTWConfig()))
    pattern = instances()[1]
    patterns = np.stack([pattern, pattern, pattern])

    _, best = reducer.reduce(1, patterns, instances()[0][None, ...])
    assert best[0] == 0


def test_pattern_reducer_requires_instances():
    reducer = PatternReducer(AlignmentEngine())
    with pytest.raises(ConfigurationError):
        reducer.reduce(3, np.empty((0, 2, 4)), instances()[0][None, ...])


def test_class_reducer_picks_smallest():
    result = ClassReducer.reduce({1: 3.2, 2: 1.1, 3: 7.0})
    assert result == ClassificationResult(score=1.1, class_id=2)


def test_class_reducer_tie_keeps_first_class():
    assert ClassReducer.reduce({4: 2.0, 1: 2.0}).class_id == 4


def test_class_reducer_empty():
    with pytest.raises(ConfigurationError):
        ClassReducer.reduce({})


def test_class_reducer_batch():
    table = np.array([
        [3.2, 0.5, 2.0],
        [1.1, 0.9, 2.0],
        [7.0, 0.1, 5.0],
    ])
    scores, class_ids = ClassReducer.reduce_batch([10, 20, 30], table)

    np.testing.assert_array_equal(scores, [1.1, 0.1, 2.0])
    np.testing.assert_array_equal(class_ids, [20, 30, 10])

    with pytest.raises(ConfigurationError):
        ClassReducer.reduce_batch([10, 20], table)
