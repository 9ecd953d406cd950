import os
import logging
from dataclasses import dataclass

from sklearn.metrics import confusion_matrix

from facedetect.trainers import load_images
from facedetect.utils import ensure_directory, image_size_range, resize_if_large

# Keeps precision / recall / F1 finite on empty classes
METRIC_EPSILON = 1e-6

@dataclass(frozen=True)
class AccuracyReport:
    true_positives: int
    false_positives: int
    true_negatives: int
    false_negatives: int
    positive_sizes: tuple = (0, 0, 0, 0)  # min_w, min_h, max_w, max_h
    negative_sizes: tuple = (0, 0, 0, 0)

    @property
    def total(self):
        return self.true_positives + self.false_positives + self.true_negatives + self.false_negatives

    @property
    def accuracy(self):
        if self.total == 0:
            return 0.0
        return (self.true_positives + self.true_negatives) / self.total

    @property
    def precision(self):
        return self.true_positives / (self.true_positives + self.false_positives + METRIC_EPSILON)

    @property
    def recall(self):
        return self.true_positives / (self.true_positives + self.false_negatives + METRIC_EPSILON)

    @property
    def f1_score(self):
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r + METRIC_EPSILON)

    def to_text(self):
        pos, neg = self.positive_sizes, self.negative_sizes
        lines = [
            "Accuracy Testing Results",
            "==========================",
            "",
            "Test set statistics:",
            f"Positive images: {self.true_positives + self.false_negatives}",
            f"Minimum positive size: {pos[0]}x{pos[1]}",
            f"Maximum positive size: {pos[2]}x{pos[3]}",
            f"Negative images: {self.true_negatives + self.false_positives}",
            f"Minimum negative size: {neg[0]}x{neg[1]}",
            f"Maximum negative size: {neg[2]}x{neg[3]}",
            f"Total images tested: {self.total}",
            "",
            "Testing results:",
            f"True Positives: {self.true_positives}",
            f"False Positives: {self.false_positives}",
            f"True Negatives: {self.true_negatives}",
            f"False Negatives: {self.false_negatives}",
            f"Accuracy: {self.accuracy * 100:.2f}%",
            f"Precision: {self.precision * 100:.2f}%",
            f"Recall: {self.recall * 100:.2f}%",
            f"F1-Score: {self.f1_score * 100:.2f}%",
        ]
        return "\n".join(lines) + "\n"

    def save(self, path):
        ensure_directory(os.path.dirname(path))
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_text())
        logging.info(f"Accuracy results saved to {path}")


class AccuracyEvaluator:
    """
    Measures detector accuracy on labeled positive (face) and negative images.

    An image counts as a detection when the detector returns at least one region.
    """

    def __init__(self, detector, classifier):
        """
        Args:
            detector (FaceDetector): Configured sliding-window detector
            classifier (SVMClassifier): Trained face / non-face classifier
        """
        self.detector = detector
        self.classifier = classifier

    def _detects_face(self, image):
        cfg = self.detector.config
        resized = resize_if_large(image, cfg.max_width, cfg.max_height)
        faces = self.detector.detect_faces(resized, self.classifier)
        return len(faces) > 0

    def evaluate(self, pos_images, neg_images):
        """
        Run the detector on both sets and tally the confusion matrix.

        Returns:
            AccuracyReport
        """
        y_true = [1] * len(pos_images) + [-1] * len(neg_images)
        y_pred = []
        for name, images in (("positive", pos_images), ("negative", neg_images)):
            for index, image in enumerate(images):
                detected = self._detects_face(image)
                y_pred.append(1 if detected else -1)
                logging.info(f"Testing {name} image {index}: face {'detected' if detected else 'not detected'}")

        if y_true:
            tp, fn, fp, tn = confusion_matrix(y_true, y_pred, labels=[1, -1]).ravel()
        else:
            tp = fn = fp = tn = 0

        report = AccuracyReport(int(tp), int(fp), int(tn), int(fn),
                                image_size_range(pos_images), image_size_range(neg_images))
        logging.info(f"Accuracy: {report.accuracy * 100:.2f}%, precision: {report.precision * 100:.2f}%, "
                     f"recall: {report.recall * 100:.2f}%, F1: {report.f1_score * 100:.2f}%")
        return report

    def evaluate_directories(self, pos_dir, neg_dir, output_path=None):
        """
        Evaluate on image directories and optionally save the text report.

        Returns:
            AccuracyReport
        """
        pos_images = load_images(pos_dir, "positive test images")
        neg_images = load_images(neg_dir, "negative test images")
        report = self.evaluate(pos_images, neg_images)
        if output_path is not None:
            report.save(output_path)
        return report
