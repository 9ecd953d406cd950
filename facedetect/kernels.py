"""
Kernel functions used by the SVM classifier.

Exactly two kernels exist: ``linear`` (plain dot product) and ``sigmoid``
(tanh of a scaled dot product of L2-normalised vectors). A :class:`Kernel`
is an immutable record of the kernel kind and its hyperparameters; it is
stored alongside a trained model so the same similarity is used at
inference time.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from facedetect.errors import ConfigurationError


class KernelKind(Enum):
    LINEAR = 'linear'
    SIGMOID = 'sigmoid'


def linear_kernel(x1, x2):
    """Dot product of two feature vectors."""
    return float(np.dot(x1, x2))


def normalize_vector(vector, epsilon=1e-12):
    """Divide a vector by its L2 norm; vectors with norm below epsilon are returned unchanged."""
    vector = np.asarray(vector, dtype=np.float64)
    norm = np.sqrt(np.dot(vector, vector))
    if norm < epsilon:
        return vector
    return vector / norm


def _normalize_rows(matrix, epsilon):
    norms = np.sqrt(np.einsum('ij,ij->i', matrix, matrix))
    safe = np.where(norms < epsilon, 1.0, norms)
    return matrix / safe[:, None]


def sigmoid_kernel(x1, x2, a=0.001, b=0.0, epsilon=1e-12):
    """tanh(a * <x1/|x1|, x2/|x2|> + b)."""
    dot = np.dot(normalize_vector(x1, epsilon), normalize_vector(x2, epsilon))
    return float(np.tanh(a * dot + b))


@dataclass(frozen=True)
class Kernel:
    """A kernel kind plus its fixed hyperparameters."""
    kind: KernelKind = KernelKind.LINEAR
    sigmoid_a: float = 0.001
    sigmoid_b: float = 0.0
    epsilon: float = 1e-12

    @classmethod
    def linear(cls):
        return cls(KernelKind.LINEAR)

    @classmethod
    def sigmoid(cls, a=0.001, b=0.0, epsilon=1e-12):
        return cls(KernelKind.SIGMOID, a, b, epsilon)

    @classmethod
    def from_name(cls, name, kernel_config=None):
        """
        Build a kernel from its configured name.

        Args:
            name (str): 'linear' or 'sigmoid'
            kernel_config (KernelConfig): Supplies the sigmoid parameters

        Returns:
            Kernel
        """
        try:
            kind = KernelKind(name.lower())
        except ValueError:
            raise ConfigurationError(f"Unknown kernel '{name}'") from None

        if kind is KernelKind.LINEAR:
            return cls.linear()
        if kernel_config is None:
            return cls.sigmoid()
        return cls.sigmoid(kernel_config.sigmoid_a, kernel_config.sigmoid_b,
                           kernel_config.epsilon)

    def compute(self, x1, x2):
        """Similarity between two feature vectors."""
        if self.kind is KernelKind.LINEAR:
            return linear_kernel(x1, x2)
        return sigmoid_kernel(x1, x2, self.sigmoid_a, self.sigmoid_b, self.epsilon)

    def compute_many(self, x, vectors):
        """Similarity between ``x`` and each row of ``vectors``."""
        vectors = np.asarray(vectors, dtype=np.float64)
        x = np.asarray(x, dtype=np.float64)
        if self.kind is KernelKind.LINEAR:
            return vectors @ x
        dots = _normalize_rows(vectors, self.epsilon) @ normalize_vector(x, self.epsilon)
        return np.tanh(self.sigmoid_a * dots + self.sigmoid_b)

    def gram_matrix(self, vectors):
        """Full N x N kernel matrix over the rows of ``vectors``."""
        vectors = np.asarray(vectors, dtype=np.float64)
        if self.kind is KernelKind.SIGMOID:
            vectors = _normalize_rows(vectors, self.epsilon)
        gram = vectors @ vectors.T
        # Symmetric by definition; remove BLAS rounding asymmetry
        gram = (gram + gram.T) / 2.0
        if self.kind is KernelKind.LINEAR:
            return gram
        return np.tanh(self.sigmoid_a * gram + self.sigmoid_b)
