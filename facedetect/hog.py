import time
import logging
import numpy as np
from skimage.util import view_as_blocks, view_as_windows

from facedetect.config import HOGConfig
from facedetect.errors import ConfigurationError
from facedetect.utils import to_luminance, scale_to_size

# Added under square roots to keep the denominators away from zero
NORM_EPSILON = 1e-6
# Normalised luminance is clipped to +/- this many standard deviations
CLIP_SIGMA = 3.0
BLOCK_CELLS = 2

class HOGExtractor:
    """
    Histogram of Oriented Gradients feature extractor.
    """

    def __init__(self, config=None):
        """
        Initialize the HOG extractor.

        Args:
            config (HOGConfig): Canonical image size, cell size and bin count
        """
        self.config = config if config is not None else HOGConfig()
        self.image_size = self.config.image_size
        self.cell_size = self.config.cell_size
        self.nbins = self.config.nbins

    def feature_length(self, width=None, height=None):
        """
        Length of the feature vector produced for a width x height grid.

        Defaults to the canonical image size.
        """
        width = self.image_size if width is None else width
        height = self.image_size if height is None else height
        cells_x = width // self.cell_size
        cells_y = height // self.cell_size
        return (cells_x - 1) * (cells_y - 1) * self.nbins * BLOCK_CELLS * BLOCK_CELLS

    @staticmethod
    def _gradients(gray):
        """Central differences on interior pixels; the border keeps a zero gradient."""
        grad_x = np.zeros_like(gray)
        grad_y = np.zeros_like(gray)
        grad_x[1:-1, 1:-1] = gray[1:-1, 2:] - gray[1:-1, :-2]
        grad_y[1:-1, 1:-1] = gray[2:, 1:-1] - gray[:-2, 1:-1]
        return grad_x, grad_y

    def extract_hog_features(self, image):
        """
        Extract HOG features from an image.

        The luminance is standardised and clipped, per-cell orientation
        histograms are built from unsigned gradient angles, and every 2x2
        group of cells (stride one cell) is L2-normalised and appended in
        row-major block order.

        Args:
            image: BGR or single-channel image, normally image_size x image_size

        Returns:
            1-D float64 feature vector
        """
        start_time = time.perf_counter()
        gray = to_luminance(image)
        height, width = gray.shape
        cells_x = width // self.cell_size
        cells_y = height // self.cell_size

        if cells_x < BLOCK_CELLS or cells_y < BLOCK_CELLS:
            raise ConfigurationError(
                f"Image of {width}x{height} is too small for {self.cell_size}px HOG cells")

        mean = gray.mean()
        std = np.sqrt(np.mean((gray - mean) ** 2) + NORM_EPSILON)
        gray = np.clip((gray - mean) / std, -CLIP_SIGMA, CLIP_SIGMA)

        grad_x, grad_y = self._gradients(gray)
        magnitude = np.sqrt(grad_x * grad_x + grad_y * grad_y)
        angle = np.arctan2(grad_y, grad_x) * 180.0 / np.pi
        angle[angle < 0] += 180.0

        bins = (angle / (180.0 / self.nbins)).astype(np.int64)
        np.minimum(bins, self.nbins - 1, out=bins)

        # Pixels past the last whole cell do not vote
        crop_h = cells_y * self.cell_size
        crop_w = cells_x * self.cell_size
        cell_shape = (self.cell_size, self.cell_size)
        n_cells = cells_x * cells_y
        cell_bins = view_as_blocks(bins[:crop_h, :crop_w], cell_shape).reshape(n_cells, -1)
        cell_mags = view_as_blocks(magnitude[:crop_h, :crop_w], cell_shape).reshape(n_cells, -1)

        slots = cell_bins + self.nbins * np.arange(n_cells)[:, None]
        histograms = np.bincount(slots.ravel(), weights=cell_mags.ravel(),
                                 minlength=n_cells * self.nbins)
        histograms = histograms.reshape(cells_y, cells_x, self.nbins)

        blocks = view_as_windows(histograms, (BLOCK_CELLS, BLOCK_CELLS, self.nbins))
        blocks = blocks.reshape(cells_y - 1, cells_x - 1, -1)
        norms = np.sqrt(np.sum(blocks * blocks, axis=-1) + NORM_EPSILON)
        features = (blocks / norms[..., None]).ravel()

        logging.debug(f"HOG extraction took {(time.perf_counter() - start_time) * 1000:.2f} ms")
        return features

    def extract_scaled_features(self, image):
        """Scale an image to the canonical size, then extract its HOG features."""
        return self.extract_hog_features(scale_to_size(image, self.image_size))

    def compute_gradient_magnitude(self, image):
        """
        Mean gradient magnitude over the interior pixels of an image.

        Works on the raw luminance and builds no histograms, so it is cheap
        enough to pre-filter sliding windows.
        """
        gray = to_luminance(image)
        if gray.shape[0] < 3 or gray.shape[1] < 3:
            return 0.0
        grad_x = gray[1:-1, 2:] - gray[1:-1, :-2]
        grad_y = gray[2:, 1:-1] - gray[:-2, 1:-1]
        return float(np.mean(np.sqrt(grad_x * grad_x + grad_y * grad_y)))
