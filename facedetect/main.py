import os
import sys
import argparse
import logging
import cv2

from facedetect.accuracy import AccuracyEvaluator
from facedetect.config import load_settings
from facedetect.detector import FaceDetector
from facedetect.errors import FaceDetectionError, ResourceError
from facedetect.hog import HOGExtractor
from facedetect.recognize import FaceRecognizer, annotate, best_region
from facedetect.svm import SVMClassifier
from facedetect.trainers import DetectionTrainer, IdentityTrainer, load_identity_models
from facedetect.utils import setup_logger, load_image, resize_if_large, scale_to_size, ensure_directory

def log_progress(identity, status):
    logging.info(f"[{identity}] {status}")

def save_image(image, path):
    ensure_directory(os.path.dirname(path))
    if not cv2.imwrite(path, image):
        raise ResourceError(f"Could not write image: {path}")
    logging.info(f"Image saved to {path}")

def run(args, config):
    """Execute the requested mode."""
    hog_extractor = HOGExtractor(config.hog)
    detector = FaceDetector(hog_extractor, config.detector)
    paths = config.paths
    model_path = args.model or paths.detector_model
    identity_dir = args.identity_models or os.path.join(paths.model_dir, 'identities')

    if args.mode == 'train_detector':
        logging.info("Starting face detection training mode")
        trainer = DetectionTrainer(hog_extractor, config, progress_callback=log_progress)
        _, result = trainer.train(args.pos_dir, args.neg_dir, model_path)
        logging.info(f"Detector trained: {result.support_vectors} support vectors, "
                     f"stop reason {result.stop_reason.value}")

    elif args.mode == 'train_identities':
        logging.info("Starting identity training mode")
        trainer = IdentityTrainer(hog_extractor, config, progress_callback=log_progress)
        models = trainer.train(args.train_dir, identity_dir)
        logging.info(f"Successfully trained {len(models)} identity classifiers")

    elif args.mode == 'evaluate':
        logging.info("Starting accuracy evaluation mode")
        classifier = SVMClassifier.load_model(model_path)
        evaluator = AccuracyEvaluator(detector, classifier)
        report = evaluator.evaluate_directories(
            args.pos_dir or paths.test_pos_dir,
            args.neg_dir or paths.test_neg_dir,
            os.path.join(paths.output_dir, 'test_accuracy.txt'))
        print(report.to_text())

    elif args.mode in ('detect', 'recognize'):
        if args.image is None:
            raise FaceDetectionError(f"{args.mode} mode requires --image")

        classifier = SVMClassifier.load_model(model_path)
        image = resize_if_large(load_image(args.image),
                                config.detector.max_width, config.detector.max_height)

        if args.mode == 'detect':
            regions = detector.detect_faces(image, classifier)
            for region in regions:
                print(f"x={region.x} y={region.y} size={region.width} score={region.score:.4f}")
            results = [(region, None) for region in regions]

            face = best_region(regions)
            if face is not None and args.output:
                crop = image[face.y:face.y + face.height, face.x:face.x + face.width]
                root, ext = os.path.splitext(args.output)
                save_image(scale_to_size(crop, config.hog.image_size), f"{root}_face{ext}")
        else:
            identity_models = load_identity_models(identity_dir)
            recognizer = FaceRecognizer(classifier, identity_models, detector)
            results = recognizer.detect_and_recognize(image)
            for region, label in results:
                print(f"{label}: x={region.x} y={region.y} size={region.width} score={region.score:.4f}")

        if args.output:
            save_image(annotate(image, results), args.output)

def main(argv=None):
    """
    Main entry point for the face detection system.
    """
    # Parse command-line arguments
    parser = argparse.ArgumentParser(description='HOG + SVM Face Detection System')

    # Mode selection
    parser.add_argument('--mode', type=str, required=True,
                       choices=['train_detector', 'train_identities', 'evaluate', 'detect', 'recognize'],
                       help='Operation mode')
    parser.add_argument('--settings', type=str, default=os.path.join('settings', 'settings.txt'),
                       help='KEY=value settings file (default: settings/settings.txt)')
    parser.add_argument('--model', type=str,
                       help='Face detection model file (default: models/svm_model.h5)')
    parser.add_argument('--identity_models', type=str,
                       help='Directory of per-identity models (default: models/identities)')

    # Dataset arguments
    parser.add_argument('--pos_dir', type=str,
                       help='Positive (face) image directory for train_detector / evaluate')
    parser.add_argument('--neg_dir', type=str,
                       help='Negative (non-face) image directory for train_detector / evaluate')
    parser.add_argument('--train_dir', type=str,
                       help='Directory with one subdirectory per identity')

    # Detection arguments
    parser.add_argument('--image', type=str,
                       help='Input image for detect / recognize')
    parser.add_argument('--output', type=str,
                       help='Where to save the annotated image')
    parser.add_argument('--verbose', action='store_true',
                       help='Log every scanned window and HOG timing')

    args = parser.parse_args(argv)

    # Setup logger
    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_settings(args.settings)
        run(args, config)
    except FaceDetectionError as e:
        logging.error(f"{args.mode} failed: {e}")
        return 1
    return 0

if __name__ == '__main__':
    sys.exit(main())
