import time
import logging
from typing import NamedTuple

from facedetect.config import DetectorConfig
from facedetect.hog import HOGExtractor
from facedetect.utils import intensity_std, scale_to_size

class DetectionRegion(NamedTuple):
    """Square window accepted by the detector, with its classifier score."""
    x: int
    y: int
    width: int
    height: int
    score: float

    @property
    def area(self):
        return self.width * self.height


def iou(a, b):
    """
    Intersection over Union of two axis-aligned rectangles.

    Returns 0.0 for disjoint rectangles and for a non-positive union.
    """
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x + a.width, b.x + b.width)
    y2 = min(a.y + a.height, b.y + b.height)
    intersection = max(0, x2 - x1) * max(0, y2 - y1)
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def non_max_suppression(regions, iou_threshold=0.4):
    """
    Greedy Non-Maximum Suppression.

    Regions are visited by descending score; a region is kept only if its
    IoU with every region already kept is at most ``iou_threshold``.

    Args:
        regions: Iterable of DetectionRegion
        iou_threshold (float): Maximum overlap allowed between kept regions

    Returns:
        list: Kept regions, highest score first
    """
    kept = []
    for region in sorted(regions, key=lambda r: r.score, reverse=True):
        if all(iou(region, other) <= iou_threshold for other in kept):
            kept.append(region)
    return kept


class FaceDetector:
    """
    Multi-scale sliding-window face detector.

    The detector holds no per-call state, so one instance and one trained
    classifier can serve concurrent detect_faces calls.
    """

    def __init__(self, hog_extractor=None, config=None):
        """
        Initialize the face detector.

        Args:
            hog_extractor (HOGExtractor): Feature extractor for each window
            config (DetectorConfig): Window sizes, steps and thresholds
        """
        self.hog_extractor = hog_extractor if hog_extractor is not None else HOGExtractor()
        self.config = config if config is not None else DetectorConfig()

    def _score_window(self, patch, classifier):
        """Score one window, or return None if a pre-filter rejects it."""
        cfg = self.config
        if intensity_std(patch) < cfg.variance_threshold:
            return None
        if self.hog_extractor.compute_gradient_magnitude(patch) < cfg.gradient_threshold:
            return None

        resized = scale_to_size(patch, self.hog_extractor.image_size)
        features = self.hog_extractor.extract_hog_features(resized)
        return classifier.predict_score(features)

    def detect_faces(self, image, classifier):
        """
        Detect faces in an image.

        Args:
            image: BGR or single-channel image of any size
            classifier (SVMClassifier): Trained face / non-face classifier

        Returns:
            list: DetectionRegion objects after Non-Maximum Suppression
        """
        cfg = self.config
        start_time = time.perf_counter()
        height, width = image.shape[:2]

        # Near-uniform images cannot contain face texture
        std = intensity_std(image)
        if std < cfg.variance_threshold:
            logging.info(f"Low-variance image (std={std:.2f}), skipping detection")
            return []

        logging.info(f"Starting face detection in image of size {width}x{height}")
        faces = []
        for window_size, step in zip(cfg.window_sizes, cfg.steps):
            window_count = 0
            skipped = 0
            for y in range(0, height - window_size + 1, step):
                for x in range(0, width - window_size + 1, step):
                    patch = image[y:y + window_size, x:x + window_size]
                    score = self._score_window(patch, classifier)
                    if score is None:
                        skipped += 1
                        continue

                    window_count += 1
                    if score > cfg.score_threshold:
                        faces.append(DetectionRegion(x, y, window_size, window_size, score))
                        logging.debug(f"Face candidate at x={x}, y={y}, size={window_size}, score={score:.4f}")
                    else:
                        logging.debug(f"Window at x={x}, y={y}, size={window_size}, score={score:.4f} (below threshold)")

            logging.info(f"Processed {window_count} windows ({skipped} skipped) for size {window_size}")

        filtered = non_max_suppression(faces, cfg.nms_threshold)
        logging.info(f"Detection took {time.perf_counter() - start_time:.2f} seconds, "
                     f"detected faces: {len(filtered)}")
        return filtered
