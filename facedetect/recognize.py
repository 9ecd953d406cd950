import logging
import cv2

from facedetect.detector import FaceDetector

UNKNOWN_LABEL = "Unknown"

def best_region(regions):
    """Return the highest-scoring detection region, or None if there are none."""
    if not regions:
        return None
    return max(regions, key=lambda r: r.score)


class FaceRecognizer:
    """
    Detects faces in images and identifies them with per-identity classifiers.
    """

    def __init__(self, detector_model, identity_models, detector=None):
        """
        Initialize the face recognizer.

        Args:
            detector_model (SVMClassifier): Trained face / non-face classifier
            identity_models (dict): identity -> trained "is this person" SVMClassifier
            detector (FaceDetector): Sliding-window detector
        """
        self.detector_model = detector_model
        self.identity_models = identity_models
        self.detector = detector if detector is not None else FaceDetector()
        self.hog_extractor = self.detector.hog_extractor

    def recognize_face(self, face_img):
        """
        Identify a single face crop.

        Identities are tried in sorted order and the first classifier that
        predicts +1 wins.

        Args:
            face_img: Face image of any size

        Returns:
            str: Identity name, or "Unknown"
        """
        hog_features = self.hog_extractor.extract_scaled_features(face_img)

        for identity in sorted(self.identity_models):
            prediction = self.identity_models[identity].predict(hog_features)
            logging.debug(f"Classifier {identity}: prediction={prediction}")
            if prediction == 1:
                return identity

        return UNKNOWN_LABEL

    def detect_and_recognize(self, image):
        """
        Detect faces in an image and recognize them.

        Args:
            image: BGR image to process

        Returns:
            List of (DetectionRegion, label) tuples
        """
        faces = self.detector.detect_faces(image, self.detector_model)

        recognized_faces = []
        for region in faces:
            face_img = image[region.y:region.y + region.height, region.x:region.x + region.width]
            label = self.recognize_face(face_img)
            recognized_faces.append((region, label))

        logging.info(f"Recognized {sum(1 for _, l in recognized_faces if l != UNKNOWN_LABEL)} "
                     f"of {len(recognized_faces)} detected faces")
        return recognized_faces


def annotate(image, results):
    """
    Draw labeled rectangles on a copy of an image.

    Args:
        image: BGR image
        results: Iterable of (DetectionRegion, label) tuples; label may be None

    Returns:
        Annotated copy of the image
    """
    output = image.copy()
    for region, label in results:
        # Green for known faces, red for unknown
        color = (0, 0, 255) if label == UNKNOWN_LABEL else (0, 255, 0)
        cv2.rectangle(output, (region.x, region.y),
                      (region.x + region.width, region.y + region.height), color, 2)

        text = f"{label} ({region.score:.2f})" if label else f"{region.score:.2f}"
        cv2.putText(output, text, (region.x, max(region.y - 10, 10)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 2)
    return output
