import numpy as np
import pytest

from facedetect.config import KernelConfig
from facedetect.errors import ConfigurationError
from facedetect.kernels import Kernel, KernelKind, linear_kernel, sigmoid_kernel, normalize_vector


@pytest.fixture
def vectors():
    rng = np.random.default_rng(3)
    return rng.normal(size=(6, 40))


@pytest.mark.parametrize('kernel', [Kernel.linear(), Kernel.sigmoid()])
def test_kernel_is_symmetric(kernel, vectors):
    for x in vectors:
        for y in vectors:
            assert kernel.compute(x, y) == kernel.compute(y, x)


def test_linear_kernel_is_dot_product():
    assert linear_kernel([1.0, 2.0, 3.0], [4.0, -5.0, 6.0]) == pytest.approx(12.0)


def test_sigmoid_kernel_uses_normalized_vectors():
    x = np.array([3.0, 4.0])
    # Scaling an input does not change the similarity
    assert sigmoid_kernel(x, 10 * x) == pytest.approx(np.tanh(0.001))
    assert sigmoid_kernel(x, x, a=2.0, b=0.5) == pytest.approx(np.tanh(2.5))


def test_sigmoid_kernel_handles_zero_vector():
    zero = np.zeros(5)
    assert normalize_vector(zero) is not None
    assert sigmoid_kernel(zero, np.ones(5)) == pytest.approx(0.0)
    assert sigmoid_kernel(zero, zero, b=0.3) == pytest.approx(np.tanh(0.3))


@pytest.mark.parametrize('kernel', [Kernel.linear(), Kernel.sigmoid(a=0.5, b=0.1)])
def test_vectorized_forms_match_pairwise(kernel, vectors):
    gram = kernel.gram_matrix(vectors)
    many = kernel.compute_many(vectors[0], vectors)
    for j, y in enumerate(vectors):
        expected = kernel.compute(vectors[0], y)
        assert many[j] == pytest.approx(expected, rel=1e-9, abs=1e-12)
        assert gram[0, j] == pytest.approx(expected, rel=1e-9, abs=1e-12)
    np.testing.assert_array_equal(gram, gram.T)


def test_from_name_builds_configured_kernel():
    cfg = KernelConfig(sigmoid_a=0.2, sigmoid_b=-0.1)
    kernel = Kernel.from_name('Sigmoid', cfg)
    assert kernel.kind is KernelKind.SIGMOID
    assert kernel.sigmoid_a == 0.2
    assert kernel.sigmoid_b == -0.1
    assert Kernel.from_name('linear').kind is KernelKind.LINEAR


def test_from_name_rejects_unknown_kernel():
    with pytest.raises(ConfigurationError):
        Kernel.from_name('rbf')
