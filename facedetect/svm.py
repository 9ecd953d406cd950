import os
import time
import logging
from dataclasses import dataclass
from enum import Enum

import h5py
import numpy as np

from facedetect.config import SVMConfig
from facedetect.errors import ConfigurationError, ModelNotFoundError, ResourceError
from facedetect.kernels import Kernel, KernelKind
from facedetect.utils import ensure_directory

MODEL_FORMAT_VERSION = 1

class StopReason(Enum):
    """Why the SMO loop ended, in the order the conditions are checked."""
    TIMEOUT = 'timeout'
    NO_CHANGE = 'no_change'
    SUPPORT_VECTORS_STABLE = 'support_vectors_stable'
    MAX_ITERATIONS = 'max_iterations'
    # Loop condition failed: a bound-free sweep changed nothing after the minimum iterations
    KKT_SATISFIED = 'kkt_satisfied'

    @property
    def converged(self):
        return self not in (StopReason.TIMEOUT, StopReason.MAX_ITERATIONS)


@dataclass(frozen=True)
class TrainingResult:
    iterations: int
    stop_reason: StopReason
    support_vectors: int
    bias: float
    elapsed_seconds: float
    history: tuple = ()  # (iteration, alphas changed, support vectors) per round

    @property
    def converged(self):
        return self.stop_reason.converged


def _validate_training_set(features, labels, C):
    """Reject unusable training data before any kernel is evaluated."""
    if len(features) < 2:
        raise ConfigurationError(f"SVM training needs at least 2 examples, got {len(features)}")
    if len(labels) != len(features):
        raise ConfigurationError(f"{len(features)} feature vectors but {len(labels)} labels")

    lengths = {np.size(f) for f in features}
    if 0 in lengths:
        raise ConfigurationError("Zero-length feature vector in training set")
    if len(lengths) > 1:
        raise ConfigurationError(f"Feature vectors have mismatched lengths: {sorted(lengths)}")

    unknown = set(int(l) for l in labels) - {1, -1}
    if unknown:
        raise ConfigurationError(f"Labels must be +1 or -1, got {sorted(unknown)}")
    if not C > 0:
        raise ConfigurationError(f"Regularization constant C must be positive, got {C}")


class SVMClassifier:
    """
    Binary kernel SVM trained with Sequential Minimal Optimization.

    Every training example is kept together with its Lagrange multiplier;
    only the examples whose alpha ends up above zero (support vectors)
    contribute to the decision function.
    """

    def __init__(self, features, labels, C, kernel, config=None):
        """
        Initialize the classifier with its training data.

        Args:
            features: Sequence of equal-length feature vectors
            labels: Sequence of +1 / -1 labels, one per vector
            C (float): Regularization constant
            kernel (Kernel): Similarity function
            config (SVMConfig): Solver settings

        Raises:
            ConfigurationError: If the training set is unusable
        """
        try:
            _validate_training_set(features, labels, C)
        except ConfigurationError as e:
            logging.error(f"Invalid SVM training set: {e}")
            raise

        self.vectors = np.array([np.ravel(f) for f in features], dtype=np.float64)
        self.labels = np.array([int(l) for l in labels], dtype=np.int64)
        self.alphas = np.zeros(len(self.labels))
        self.bias = 0.0
        self.C = float(C)
        self.kernel = kernel
        self.config = config if config is not None else SVMConfig()

    @classmethod
    def _restore(cls, vectors, labels, alphas, bias, C, kernel):
        classifier = cls.__new__(cls)
        classifier.vectors = vectors
        classifier.labels = labels
        classifier.alphas = alphas
        classifier.bias = bias
        classifier.C = C
        classifier.kernel = kernel
        classifier.config = SVMConfig()
        return classifier

    @property
    def feature_length(self):
        return self.vectors.shape[1]

    @property
    def support_vector_count(self):
        return int(np.count_nonzero(self.alphas > 0))

    def train(self, progress_callback=None, rng=None, clock=time.monotonic):
        """
        Optimize the Lagrange multipliers with SMO and compute the bias.

        Rounds alternate between sweeps over every example and sweeps over
        the bound-free examples (0 < alpha < C). Stop conditions are checked
        in a fixed order: timeout, consecutive rounds without changes,
        support-vector count stabilisation, then the loop condition itself.

        Args:
            progress_callback: Optional callable(iteration, changed, support_vectors)
            rng (numpy.random.Generator): Source for the random second-choice
                fallback; a fresh unseeded generator when None
            clock: Callable returning seconds, used for the timeout

        Returns:
            TrainingResult: Iterations, stop reason and per-round history
        """
        cfg = self.config
        n = len(self.labels)
        rng = rng if rng is not None else np.random.default_rng()
        start_time = clock()

        K = self.kernel.gram_matrix(self.vectors)
        self.alphas = np.zeros(n)
        self.bias = 0.0

        num_changed = 0
        examine_all = True
        iteration = 0
        no_change_count = 0
        prev_sv_count = 0
        stop_reason = None
        history = []

        logging.info(f"Starting SVM training with {n} examples ({self.kernel.kind.value} kernel, C={self.C})")
        while iteration < cfg.max_iterations and (num_changed > 0 or examine_all or iteration < cfg.min_iterations):
            elapsed = clock() - start_time
            if elapsed > cfg.timeout_seconds:
                stop_reason = StopReason.TIMEOUT
                break

            num_changed = 0
            for i in range(n):
                if examine_all or 0 < self.alphas[i] < self.C:
                    num_changed += self._examine_example(i, K, rng)

            iteration += 1
            sv_count = self.support_vector_count
            history.append((iteration, num_changed, sv_count))
            logging.info(
                f"Iteration {iteration}: {num_changed} alphas modified, support vectors={sv_count} "
                f"({sv_count / cfg.expected_max_sv * 100:.2f}% of {cfg.expected_max_sv}), "
                f"progress={iteration / cfg.estimated_max_iterations * 100:.2f}%, "
                f"time={clock() - start_time:.0f} seconds")
            if progress_callback is not None:
                progress_callback(iteration, num_changed, sv_count)

            if num_changed == 0:
                no_change_count += 1
                if no_change_count >= cfg.max_no_change_iterations and iteration >= cfg.min_iterations:
                    stop_reason = StopReason.NO_CHANGE
                    break
            else:
                no_change_count = 0

            if iteration >= cfg.min_iterations and sv_count == prev_sv_count and num_changed == 0:
                stop_reason = StopReason.SUPPORT_VECTORS_STABLE
                break
            prev_sv_count = sv_count

            if examine_all and iteration >= cfg.min_iterations:
                examine_all = False
            elif num_changed == 0 and iteration >= cfg.min_iterations:
                examine_all = True

        if stop_reason is None:
            if iteration >= cfg.max_iterations:
                stop_reason = StopReason.MAX_ITERATIONS
            else:
                stop_reason = StopReason.KKT_SATISFIED

        self.bias = self._final_bias(K)
        elapsed = clock() - start_time
        result = TrainingResult(iterations=iteration, stop_reason=stop_reason,
                                support_vectors=self.support_vector_count, bias=self.bias,
                                elapsed_seconds=elapsed, history=tuple(history))

        if result.converged:
            logging.info(f"Training converged ({stop_reason.value}) after {iteration} iterations")
        else:
            logging.warning(f"Training stopped by {stop_reason.value} after {iteration} iterations "
                            f"({elapsed:.0f} seconds) without converging")
        logging.info(f"Support vectors: {result.support_vectors}, bias: {self.bias}")
        return result

    def _errors(self, K):
        """Prediction error f(x_i) - y_i for every training example."""
        active = np.where(self.alphas > 0, self.alphas * self.labels, 0.0)
        return K @ active + self.bias - self.labels

    def _examine_example(self, i1, K, rng):
        """
        Try to jointly optimize alpha[i1] with a second multiplier.

        Returns:
            int: 1 if the pair was updated, 0 otherwise
        """
        n = len(self.labels)
        errors = self._errors(K)
        y1 = self.labels[i1]
        e1 = errors[i1]

        # Second choice: largest |E1 - E2|, first index on ties
        gaps = np.abs(e1 - errors)
        gaps[i1] = 0.0
        i2 = int(np.argmax(gaps))
        if not gaps[i2] > 0.0:
            i2 = i1
            while i2 == i1:
                i2 = int(rng.integers(n))

        y2 = self.labels[i2]
        e2 = errors[i2]
        alpha1 = self.alphas[i1]
        alpha2 = self.alphas[i2]

        if y1 != y2:
            low = max(0.0, alpha2 - alpha1)
            high = min(self.C, self.C + alpha2 - alpha1)
        else:
            low = max(0.0, alpha1 + alpha2 - self.C)
            high = min(self.C, alpha1 + alpha2)
        if low >= high:
            return 0

        k11 = K[i1, i1]
        k22 = K[i2, i2]
        k12 = K[i1, i2]
        eta = 2.0 * k12 - k11 - k22
        # Non-negative curvature is not a descent direction for this solver
        if eta >= 0:
            return 0

        a2 = alpha2 - y2 * (e1 - e2) / eta
        a2 = max(low, min(high, a2))
        if abs(a2 - alpha2) < self.config.epsilon:
            return 0

        a1 = alpha1 + y1 * y2 * (alpha2 - a2)
        b1 = self.bias - e1 - y1 * (a1 - alpha1) * k11 - y2 * (a2 - alpha2) * k12
        b2 = self.bias - e2 - y1 * (a1 - alpha1) * k12 - y2 * (a2 - alpha2) * k22
        self.bias = (b1 + b2) / 2.0

        self.alphas[i1] = a1
        self.alphas[i2] = a2
        return 1

    def _final_bias(self, K):
        """Mean of y_i - sum_j alpha_j y_j K_ij over the free support vectors, or 0."""
        free = (self.alphas > 0) & (self.alphas < self.C)
        if not free.any():
            return 0.0
        coef = self.alphas * self.labels
        return float(np.mean(self.labels[free] - K[free] @ coef))

    def predict_score(self, x):
        """
        Signed distance-like score of a feature vector.

        Args:
            x: Feature vector of the training length

        Returns:
            float: bias + sum over support vectors of alpha_i * y_i * K(x, x_i)
        """
        x = np.ravel(np.asarray(x, dtype=np.float64))
        if x.shape[0] != self.feature_length:
            raise ConfigurationError(
                f"Feature vector has length {x.shape[0]}, classifier expects {self.feature_length}")

        mask = self.alphas > 0
        if not mask.any():
            return float(self.bias)
        coef = self.alphas[mask] * self.labels[mask]
        return float(self.bias + coef @ self.kernel.compute_many(x, self.vectors[mask]))

    def predict(self, x):
        """Predict the class of a feature vector: 1 if its score is positive, else -1."""
        return 1 if self.predict_score(x) > 0 else -1

    def save_model(self, model_path):
        """
        Save the support vectors, labels, alphas, bias, C and kernel to an HDF5 file.

        Only examples with alpha > 0 are written, in training order, so the
        reloaded classifier scores exactly like this one.

        Args:
            model_path (str): Destination file

        Raises:
            ResourceError: If the file cannot be written
        """
        mask = self.alphas > 0
        try:
            ensure_directory(os.path.dirname(model_path))
            with h5py.File(model_path, 'w') as h5f:
                h5f.create_dataset('support_vectors', data=self.vectors[mask])
                h5f.create_dataset('labels', data=self.labels[mask].astype(np.int8))
                h5f.create_dataset('alphas', data=self.alphas[mask])
                h5f.attrs['format_version'] = MODEL_FORMAT_VERSION
                h5f.attrs['feature_length'] = self.feature_length
                h5f.attrs['bias'] = self.bias
                h5f.attrs['C'] = self.C
                h5f.attrs['kernel'] = self.kernel.kind.value
                h5f.attrs['sigmoid_a'] = self.kernel.sigmoid_a
                h5f.attrs['sigmoid_b'] = self.kernel.sigmoid_b
                h5f.attrs['kernel_epsilon'] = self.kernel.epsilon
        except OSError as e:
            error_msg = f"Error saving SVM model to {model_path}: {e}"
            logging.error(error_msg)
            raise ResourceError(error_msg) from e

        logging.info(f"Classifier saved to {model_path} ({int(mask.sum())} support vectors)")

    @classmethod
    def load_model(cls, model_path):
        """
        Load a classifier written by save_model.

        Args:
            model_path (str): Model file

        Returns:
            SVMClassifier: Read-only classifier ready for scoring

        Raises:
            ModelNotFoundError: If the file does not exist
            ResourceError: If the file is not a readable model
        """
        if not os.path.exists(model_path):
            error_msg = f"Model file not found: {model_path}"
            logging.error(error_msg)
            raise ModelNotFoundError(error_msg)

        try:
            with h5py.File(model_path, 'r') as h5f:
                feature_length = int(h5f.attrs['feature_length'])
                vectors = np.asarray(h5f['support_vectors'][:], dtype=np.float64)
                vectors = vectors.reshape(-1, feature_length)
                labels = h5f['labels'][:].astype(np.int64)
                alphas = np.asarray(h5f['alphas'][:], dtype=np.float64)
                kernel = Kernel(KernelKind(str(h5f.attrs['kernel'])),
                                float(h5f.attrs['sigmoid_a']),
                                float(h5f.attrs['sigmoid_b']),
                                float(h5f.attrs['kernel_epsilon']))
                bias = float(h5f.attrs['bias'])
                C = float(h5f.attrs['C'])
        except (OSError, KeyError, ValueError) as e:
            error_msg = f"Error loading SVM model from {model_path}: {e}"
            logging.error(error_msg)
            raise ResourceError(error_msg) from e

        logging.info(f"Classifier loaded from {model_path} ({len(alphas)} support vectors)")
        return cls._restore(vectors, labels, alphas, bias, C, kernel)
