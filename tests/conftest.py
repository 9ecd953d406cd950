import numpy as np
import pytest

from facedetect.config import SVMConfig


def make_checkerboard(size=128, square=16, low=0, high=255):
    ys, xs = np.indices((size, size))
    board = np.where(((ys // square) + (xs // square)) % 2 == 0, high, low).astype(np.uint8)
    return np.dstack([board] * 3)


def make_uniform(size=128, value=128, width=None):
    width = size if width is None else width
    return np.full((size, width, 3), value, dtype=np.uint8)


def make_stripes(size=128, period=16, vertical=False, low=0, high=255):
    ys, xs = np.indices((size, size))
    axis = xs if vertical else ys
    stripes = np.where((axis // (period // 2)) % 2 == 0, high, low).astype(np.uint8)
    return np.dstack([stripes] * 3)


class ConstantClassifier:
    """Stands in for a trained SVMClassifier; scores every window the same."""

    def __init__(self, score):
        self.score = score
        self.scored_lengths = []

    def predict_score(self, x):
        self.scored_lengths.append(len(x))
        return self.score

    def predict(self, x):
        return 1 if self.predict_score(x) > 0 else -1


@pytest.fixture
def checkerboard():
    return make_checkerboard


@pytest.fixture
def uniform():
    return make_uniform


@pytest.fixture
def stripes():
    return make_stripes


@pytest.fixture
def constant_classifier():
    return ConstantClassifier


@pytest.fixture
def noise_image():
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(300, 300, 3), dtype=np.uint8)


@pytest.fixture
def fast_svm_config():
    return SVMConfig(max_iterations=200, timeout_seconds=60.0)
