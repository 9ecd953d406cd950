import os
import glob
import logging
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from facedetect.config import AppConfig
from facedetect.errors import ConfigurationError, ModelNotFoundError
from facedetect.hog import HOGExtractor
from facedetect.kernels import Kernel
from facedetect.svm import SVMClassifier
from facedetect.utils import ensure_directory, list_image_files, load_image, image_size_range

STATUS_IN_PROGRESS = "Training in progress..."
STATUS_COMPLETED = "Completed"
STATUS_SKIPPED = "Skipped: no images"
DETECTOR_PROGRESS_ID = "detector"

def load_images(directory, description="images"):
    """
    Load every image file in a directory.

    Args:
        directory (str): Directory to read
        description (str): Name of the set, for the log

    Returns:
        list: BGR images in file name order
    """
    paths = list_image_files(directory)
    logging.info(f"Loading {len(paths)} {description} from {directory}")
    images = [load_image(path) for path in paths]

    if images:
        min_w, min_h, max_w, max_h = image_size_range(images)
        logging.info(f"{description}: {len(images)} images, "
                     f"sizes from {min_w}x{min_h} to {max_w}x{max_h}")
    return images

def plot_training_history(result, plot_path):
    """
    Plot and save the SMO progress of a training run.

    Args:
        result (TrainingResult): Training run with its per-round history
        plot_path (str): Destination PNG file
    """
    if not result.history:
        return

    try:
        iterations, changed, support_vectors = zip(*result.history)

        plt.figure(figsize=(12, 5))

        # Alphas modified per round
        plt.subplot(1, 2, 1)
        plt.plot(iterations, changed, label='Alphas modified')
        plt.xlabel('Iteration')
        plt.ylabel('Pairs updated')
        plt.title('SMO Updates')
        plt.legend()

        # Support vectors
        plt.subplot(1, 2, 2)
        plt.plot(iterations, support_vectors, label='Support vectors')
        plt.xlabel('Iteration')
        plt.ylabel('Count')
        plt.title(f'Support Vectors (stop: {result.stop_reason.value})')
        plt.legend()

        plt.tight_layout()

        ensure_directory(os.path.dirname(plot_path))
        plt.savefig(plot_path)
        plt.close()
        logging.info(f"Training history plot saved to {plot_path}")

    except Exception as e:
        logging.error(f"Error plotting training history: {e}")


class DetectionTrainer:
    """
    Trains the face / non-face classifier from flat positive and negative image sets.
    """

    def __init__(self, hog_extractor=None, config=None, progress_callback=None):
        """
        Initialize the detection trainer.

        Args:
            hog_extractor (HOGExtractor): Feature extractor shared with the detector
            config (AppConfig): Kernel, C, solver and path settings
            progress_callback: Optional callable(identity, status); the
                detector reports under DETECTOR_PROGRESS_ID
        """
        self.config = config if config is not None else AppConfig()
        self.hog_extractor = hog_extractor if hog_extractor is not None else HOGExtractor(self.config.hog)
        self.kernel = Kernel.from_name(self.config.kernels.detection, self.config.kernels)
        self.C = self.config.training.detection_c
        self.progress_callback = progress_callback

    def _notify(self, status):
        if self.progress_callback is not None:
            self.progress_callback(DETECTOR_PROGRESS_ID, status)

    def build_training_set(self, pos_images, neg_images):
        """
        Extract features from both sets and label them +1 / -1.

        Raises:
            ConfigurationError: If either set is empty
        """
        for name, images in (("positive", pos_images), ("negative", neg_images)):
            if not images:
                error_msg = f"No {name} images for detection training"
                logging.error(error_msg)
                raise ConfigurationError(error_msg)

        features = [self.hog_extractor.extract_scaled_features(img) for img in pos_images]
        features += [self.hog_extractor.extract_scaled_features(img) for img in neg_images]
        labels = [1] * len(pos_images) + [-1] * len(neg_images)

        total = len(labels)
        if total < self.config.training.min_recommended_images:
            logging.warning(f"Training set is small ({total} images). Recommend at least "
                            f"{self.config.training.min_recommended_images} images.")
        return features, labels

    def train_from_images(self, pos_images, neg_images, rng=None, model_path=None):
        """
        Train a detection classifier from in-memory images.

        Args:
            pos_images: Face images
            neg_images: Non-face images
            rng (numpy.random.Generator): SMO tie-break source
            model_path (str): If given, the model is saved there before
                training is reported as completed

        Returns:
            tuple: (SVMClassifier, TrainingResult)
        """
        features, labels = self.build_training_set(pos_images, neg_images)
        logging.info(f"Training {self.kernel.kind.value} SVM on {len(pos_images)} positive "
                     f"and {len(neg_images)} negative images")

        self._notify(STATUS_IN_PROGRESS)
        classifier = SVMClassifier(features, labels, self.C, self.kernel, self.config.svm)
        result = classifier.train(rng=rng)

        if model_path is not None:
            classifier.save_model(model_path)

        self._notify(STATUS_COMPLETED)
        return classifier, result

    def train(self, pos_dir=None, neg_dir=None, model_path=None, rng=None):
        """
        Train from image directories and save the model.

        Args:
            pos_dir (str): Face images (defaults to the configured path)
            neg_dir (str): Non-face images (defaults to the configured path)
            model_path (str): Output model file (defaults to the configured path)

        Returns:
            tuple: (SVMClassifier, TrainingResult)
        """
        paths = self.config.paths
        pos_dir = pos_dir or paths.detection_pos_dir
        neg_dir = neg_dir or paths.detection_neg_dir
        model_path = model_path or paths.detector_model

        pos_images = load_images(pos_dir, "positive images")
        neg_images = load_images(neg_dir, "negative images")

        classifier, result = self.train_from_images(pos_images, neg_images, rng=rng,
                                                    model_path=model_path)

        plot_path = os.path.join(os.path.dirname(model_path), 'training_history.png')
        plot_training_history(result, plot_path)
        return classifier, result


def identity_model_path(model_dir, identity):
    return os.path.join(model_dir, f'svm_{identity}.h5')

def load_identity_models(model_dir):
    """
    Load every per-identity classifier from a model directory.

    Returns:
        dict: identity -> SVMClassifier

    Raises:
        ModelNotFoundError: If the directory is missing or holds no identity models
    """
    paths = sorted(glob.glob(os.path.join(model_dir, 'svm_*.h5')))
    if not paths:
        error_msg = f"No identity classifiers found in {model_dir}"
        logging.error(error_msg)
        raise ModelNotFoundError(error_msg)

    models = {}
    for path in paths:
        identity = os.path.splitext(os.path.basename(path))[0][len('svm_'):]
        models[identity] = SVMClassifier.load_model(path)
    logging.info(f"Total identity classifiers loaded: {len(models)}")
    return models


class IdentityTrainer:
    """
    Trains one "is this person" classifier per enrolled identity (one-vs-rest).

    Each identity's images are the positives and every other identity's
    images are the negatives, so all classifiers are rebuilt whenever the
    set of identities changes.
    """

    def __init__(self, hog_extractor=None, config=None, progress_callback=None):
        """
        Initialize the identity trainer.

        Args:
            hog_extractor (HOGExtractor): Feature extractor
            config (AppConfig): Kernel, C, solver and path settings
            progress_callback: Optional callable(identity, status)
        """
        self.config = config if config is not None else AppConfig()
        self.hog_extractor = hog_extractor if hog_extractor is not None else HOGExtractor(self.config.hog)
        self.kernel = Kernel.from_name(self.config.kernels.recognition, self.config.kernels)
        self.C = self.config.training.recognition_c
        self.progress_callback = progress_callback
        self.results = {}

    def _notify(self, identity, status):
        if self.progress_callback is not None:
            self.progress_callback(identity, status)

    def load_identities(self, train_dir):
        """
        Load one image set per identity subdirectory.

        Raises:
            ConfigurationError: If the directory has no identity subdirectories
        """
        identities = []
        if os.path.isdir(train_dir):
            identities = sorted(d for d in os.listdir(train_dir)
                                if os.path.isdir(os.path.join(train_dir, d)))
        if not identities:
            error_msg = f"Directory {train_dir} is empty or does not exist"
            logging.error(error_msg)
            raise ConfigurationError(error_msg)

        logging.info(f"Found {len(identities)} identities in {train_dir}")
        return {identity: load_images(os.path.join(train_dir, identity), f"images of {identity}")
                for identity in identities}

    def train_from_images(self, images_by_identity, model_dir=None, rng=None):
        """
        Train a classifier for every identity.

        Args:
            images_by_identity (dict): identity -> list of face images
            model_dir (str): If given, each model is saved there before it is
                reported as completed
            rng (numpy.random.Generator): Shared SMO tie-break source

        Returns:
            dict: identity -> SVMClassifier for every identity that had images
        """
        enrolled = [identity for identity, images in images_by_identity.items() if images]
        if len(enrolled) < 2:
            raise ConfigurationError(
                f"One-vs-rest training needs images for at least 2 identities, got {len(enrolled)}")

        features_by_identity = {
            identity: [self.hog_extractor.extract_scaled_features(img) for img in images]
            for identity, images in images_by_identity.items()
        }

        models = {}
        self.results = {}
        for identity, positives in features_by_identity.items():
            if not positives:
                logging.warning(f"No positive images found for {identity}")
                self._notify(identity, STATUS_SKIPPED)
                continue

            self._notify(identity, STATUS_IN_PROGRESS)
            negatives = [f for other, feats in features_by_identity.items()
                         if other != identity for f in feats]
            logging.info(f"For {identity}: {len(positives)} positive, {len(negatives)} negative")

            features = positives + negatives
            labels = [1] * len(positives) + [-1] * len(negatives)
            classifier = SVMClassifier(features, labels, self.C, self.kernel, self.config.svm)
            self.results[identity] = classifier.train(rng=rng)

            if model_dir is not None:
                classifier.save_model(identity_model_path(model_dir, identity))

            models[identity] = classifier
            self._notify(identity, STATUS_COMPLETED)

        return models

    def train(self, train_dir=None, model_dir=None, rng=None):
        """
        Train and save classifiers for every identity directory.

        Returns:
            dict: identity -> SVMClassifier
        """
        train_dir = train_dir or self.config.paths.recognition_dir
        model_dir = model_dir or os.path.join(self.config.paths.model_dir, 'identities')

        images_by_identity = self.load_identities(train_dir)
        ensure_directory(model_dir)
        models = self.train_from_images(images_by_identity, model_dir=model_dir, rng=rng)
        logging.info(f"Trained {len(models)} identity classifiers")
        return models
