import itertools

import h5py
import numpy as np
import pytest

from facedetect.config import SVMConfig
from facedetect.errors import ConfigurationError, ModelNotFoundError, ResourceError
from facedetect.kernels import Kernel
from facedetect.svm import SVMClassifier, StopReason


@pytest.fixture
def blobs():
    """Two well separated Gaussian clusters."""
    rng = np.random.default_rng(11)
    pos = rng.normal(loc=3.0, scale=0.5, size=(15, 4))
    neg = rng.normal(loc=-3.0, scale=0.5, size=(15, 4))
    features = np.vstack([pos, neg])
    labels = [1] * 15 + [-1] * 15
    return features, labels


def test_two_separated_points_give_symmetric_boundary():
    features = [np.array([2.0, 0.0]), np.array([-2.0, 0.0])]
    classifier = SVMClassifier(features, [1, -1], 1.0, Kernel.linear())
    result = classifier.train(rng=np.random.default_rng(0))

    assert result.converged
    assert result.iterations <= classifier.config.max_iterations
    assert classifier.predict(features[0]) == 1
    assert classifier.predict(features[1]) == -1
    assert classifier.predict_score([0.0, 0.0]) == pytest.approx(0.0, abs=1e-9)
    np.testing.assert_allclose(classifier.alphas, [0.125, 0.125])


def test_training_separates_clusters(blobs, fast_svm_config):
    features, labels = blobs
    classifier = SVMClassifier(features, labels, 1.0, Kernel.linear(), fast_svm_config)
    result = classifier.train(rng=np.random.default_rng(1))

    assert len(classifier.alphas) == len(labels)
    assert np.all(classifier.alphas >= -1e-12)
    assert np.all(classifier.alphas <= classifier.C + 1e-12)
    assert 0 < result.support_vectors < len(labels)
    assert [classifier.predict(x) for x in features] == labels
    assert classifier.predict(np.full(4, 2.5)) == 1
    assert classifier.predict(np.full(4, -2.5)) == -1


def test_sigmoid_kernel_training(blobs, fast_svm_config):
    features, labels = blobs
    classifier = SVMClassifier(features, labels, 1.0, Kernel.sigmoid(a=1.0), fast_svm_config)
    classifier.train(rng=np.random.default_rng(2))
    assert classifier.predict(np.full(4, 3.0)) == 1
    assert classifier.predict(np.full(4, -3.0)) == -1


def test_seeded_training_is_reproducible(blobs, fast_svm_config):
    features, labels = blobs
    runs = []
    for _ in range(2):
        classifier = SVMClassifier(features, labels, 1.0, Kernel.linear(), fast_svm_config)
        classifier.train(rng=np.random.default_rng(5))
        runs.append((classifier.alphas.copy(), classifier.bias))
    np.testing.assert_array_equal(runs[0][0], runs[1][0])
    assert runs[0][1] == runs[1][1]


def test_progress_callback_does_not_change_the_model(blobs, fast_svm_config):
    features, labels = blobs
    calls = []

    plain = SVMClassifier(features, labels, 1.0, Kernel.linear(), fast_svm_config)
    plain.train(rng=np.random.default_rng(9))

    observed = SVMClassifier(features, labels, 1.0, Kernel.linear(), fast_svm_config)
    result = observed.train(progress_callback=lambda *args: calls.append(args),
                            rng=np.random.default_rng(9))

    np.testing.assert_array_equal(plain.alphas, observed.alphas)
    assert plain.bias == observed.bias
    assert len(calls) == result.iterations
    assert calls == list(result.history)
    assert calls[-1][2] == result.support_vectors


def test_minimum_iterations_are_respected(blobs):
    features, labels = blobs
    config = SVMConfig(min_iterations=8, max_no_change_iterations=3)
    classifier = SVMClassifier(features, labels, 1.0, Kernel.linear(), config)
    result = classifier.train(rng=np.random.default_rng(3))
    assert result.iterations >= 8
    assert result.stop_reason in (StopReason.NO_CHANGE, StopReason.SUPPORT_VECTORS_STABLE,
                                  StopReason.KKT_SATISFIED)


def test_iteration_cap_is_reported_as_not_converged(blobs):
    features, labels = blobs
    config = SVMConfig(max_iterations=1)
    classifier = SVMClassifier(features, labels, 1.0, Kernel.linear(), config)
    result = classifier.train(rng=np.random.default_rng(4))

    assert result.iterations == 1
    assert result.stop_reason is StopReason.MAX_ITERATIONS
    assert not result.converged


def test_timeout_is_reported_as_not_converged(blobs):
    features, labels = blobs
    config = SVMConfig(timeout_seconds=10.0)
    ticks = itertools.count(0, 100)
    classifier = SVMClassifier(features, labels, 1.0, Kernel.linear(), config)
    result = classifier.train(rng=np.random.default_rng(4), clock=lambda: next(ticks))

    assert result.stop_reason is StopReason.TIMEOUT
    assert not result.converged
    assert result.iterations == 0
    assert classifier.support_vector_count == 0
    assert classifier.bias == 0.0


def test_duplicated_examples_converge():
    # Duplicated examples share their errors, so partner choice hits ties
    features = [np.ones(3), np.ones(3), -np.ones(3), -np.ones(3)]
    classifier = SVMClassifier(features, [1, 1, -1, -1], 1.0, Kernel.linear())
    result = classifier.train(rng=np.random.default_rng(6))
    assert result.converged
    assert classifier.predict(np.ones(3)) == 1
    assert classifier.predict(-np.ones(3)) == -1


@pytest.mark.parametrize('features, labels, C', [
    ([np.ones(3)], [1], 1.0),
    ([np.ones(3), np.ones(4)], [1, -1], 1.0),
    ([np.ones(0), np.ones(0)], [1, -1], 1.0),
    ([np.ones(3), np.ones(3)], [1, 0], 1.0),
    ([np.ones(3), np.ones(3)], [1], 1.0),
    ([np.ones(3), np.ones(3)], [1, -1], 0.0),
])
def test_invalid_training_sets_fail_fast(features, labels, C):
    with pytest.raises(ConfigurationError):
        SVMClassifier(features, labels, C, Kernel.linear())


def test_predict_rejects_wrong_feature_length(blobs):
    features, labels = blobs
    classifier = SVMClassifier(features, labels, 1.0, Kernel.linear())
    with pytest.raises(ConfigurationError):
        classifier.predict_score(np.ones(5))


def test_untrained_classifier_scores_bias(blobs):
    features, labels = blobs
    classifier = SVMClassifier(features, labels, 1.0, Kernel.linear())
    assert classifier.predict_score(features[0]) == 0.0
    assert classifier.predict(features[0]) == -1


@pytest.mark.parametrize('kernel', [Kernel.linear(), Kernel.sigmoid(a=0.7, b=0.05)])
def test_save_and_load_preserve_scores(tmp_path, blobs, fast_svm_config, kernel):
    features, labels = blobs
    classifier = SVMClassifier(features, labels, 0.5, kernel, fast_svm_config)
    classifier.train(rng=np.random.default_rng(8))

    path = str(tmp_path / 'models' / 'svm_model.h5')
    classifier.save_model(path)
    loaded = SVMClassifier.load_model(path)

    assert loaded.kernel == kernel
    assert loaded.C == 0.5
    assert loaded.bias == classifier.bias
    assert loaded.support_vector_count == classifier.support_vector_count
    assert len(loaded.alphas) == classifier.support_vector_count

    probes = np.random.default_rng(12).normal(scale=3.0, size=(10, 4))
    for x in np.vstack([features, probes]):
        assert loaded.predict_score(x) == pytest.approx(classifier.predict_score(x), rel=0, abs=1e-12)


def test_saved_file_layout(tmp_path, blobs, fast_svm_config):
    features, labels = blobs
    classifier = SVMClassifier(features, labels, 1.0, Kernel.linear(), fast_svm_config)
    classifier.train(rng=np.random.default_rng(8))
    path = str(tmp_path / 'svm_model.h5')
    classifier.save_model(path)

    with h5py.File(path, 'r') as h5f:
        assert h5f['support_vectors'].shape == (classifier.support_vector_count, 4)
        assert set(h5f['labels'][:]) <= {1, -1}
        assert np.all(h5f['alphas'][:] > 0)
        assert h5f.attrs['kernel'] == 'linear'


def test_load_missing_model_raises(tmp_path):
    with pytest.raises(ModelNotFoundError):
        SVMClassifier.load_model(str(tmp_path / 'missing.h5'))


def test_load_corrupt_model_raises(tmp_path):
    path = tmp_path / 'broken.h5'
    path.write_bytes(b'not an hdf5 file')
    with pytest.raises(ResourceError):
        SVMClassifier.load_model(str(path))
