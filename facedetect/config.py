"""
Configuration records for the detection and recognition pipeline.

Every component receives its settings explicitly through one of the frozen
dataclasses below. Values can be overridden from a plain ``KEY=value``
settings file (see :func:`load_settings`); each accepted key is listed in
``SETTINGS_KEYS`` together with the field it sets.
"""

import os
import logging
from dataclasses import dataclass, field, replace

from facedetect.errors import ConfigurationError

KERNEL_NAMES = ('linear', 'sigmoid')


@dataclass(frozen=True)
class HOGConfig:
    """Feature extractor geometry."""
    image_size: int = 128   # canonical extractor input (square)
    cell_size: int = 8
    nbins: int = 9

    def __post_init__(self):
        if self.cell_size <= 0 or self.nbins <= 0:
            raise ConfigurationError("HOG cell size and bin count must be positive")
        if self.image_size < 2 * self.cell_size:
            raise ConfigurationError(
                f"Image size {self.image_size} holds fewer than 2x2 cells of {self.cell_size}px")


@dataclass(frozen=True)
class SVMConfig:
    """SMO solver settings."""
    epsilon: float = 1e-12
    max_iterations: int = 10000
    min_iterations: int = 5
    timeout_seconds: float = 15 * 60.0
    max_no_change_iterations: int = 3
    # Only used to express progress as a percentage in the training log
    estimated_max_iterations: int = 1000
    expected_max_sv: int = 200


@dataclass(frozen=True)
class KernelConfig:
    detection: str = 'linear'
    recognition: str = 'sigmoid'
    sigmoid_a: float = 0.001
    sigmoid_b: float = 0.0
    epsilon: float = 1e-12

    def __post_init__(self):
        for name in (self.detection, self.recognition):
            if name not in KERNEL_NAMES:
                raise ConfigurationError(f"Unknown kernel '{name}', expected one of {KERNEL_NAMES}")


@dataclass(frozen=True)
class DetectorConfig:
    """Sliding-window scan and filtering thresholds."""
    window_sizes: tuple = (112, 128)
    steps: tuple = (40, 48)
    score_threshold: float = 0.035
    variance_threshold: float = 20.0
    gradient_threshold: float = 10.0
    nms_threshold: float = 0.4
    # Larger frames are shrunk before scanning
    max_width: int = 640
    max_height: int = 360

    def __post_init__(self):
        if len(self.window_sizes) != len(self.steps):
            raise ConfigurationError(
                f"{len(self.window_sizes)} window sizes but {len(self.steps)} steps")
        if any(s <= 0 for s in self.window_sizes) or any(s <= 0 for s in self.steps):
            raise ConfigurationError("Window sizes and steps must be positive")


@dataclass(frozen=True)
class TrainingConfig:
    detection_c: float = 0.1
    recognition_c: float = 1.0
    min_recommended_images: int = 600


@dataclass(frozen=True)
class PathsConfig:
    detection_pos_dir: str = os.path.join('data', 'train', 'detection', 'pos')
    detection_neg_dir: str = os.path.join('data', 'train', 'detection', 'neg')
    recognition_dir: str = os.path.join('data', 'train', 'recognition')
    test_pos_dir: str = os.path.join('data', 'test', 'pos')
    test_neg_dir: str = os.path.join('data', 'test', 'neg')
    model_dir: str = 'models'
    detector_model: str = os.path.join('models', 'svm_model.h5')
    output_dir: str = 'output'


@dataclass(frozen=True)
class AppConfig:
    hog: HOGConfig = field(default_factory=HOGConfig)
    svm: SVMConfig = field(default_factory=SVMConfig)
    kernels: KernelConfig = field(default_factory=KernelConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)


def _int_list(value):
    return tuple(int(v) for v in value.split(',') if v.strip())


def _kernel_name(value):
    return value.strip().lower()


def _millis_to_seconds(value):
    return float(value) / 1000.0


def _int(value):
    # Settings written by hand often carry "10000.0"
    return int(float(value))


# settings key -> (AppConfig section, field name, parser)
SETTINGS_KEYS = {
    'SCORE_THRESHOLD': ('detector', 'score_threshold', float),
    'WINDOW_SIZES': ('detector', 'window_sizes', _int_list),
    'STEPS': ('detector', 'steps', _int_list),
    'GRADIENT_THRESHOLD': ('detector', 'gradient_threshold', float),
    'VARIANCE_THRESHOLD': ('detector', 'variance_threshold', float),
    'NMS_THRESHOLD': ('detector', 'nms_threshold', float),
    'EPSILON': ('svm', 'epsilon', float),
    'MAX_ITERATIONS': ('svm', 'max_iterations', _int),
    'MIN_ITERATIONS': ('svm', 'min_iterations', _int),
    'TIMEOUT_MS': ('svm', 'timeout_seconds', _millis_to_seconds),
    'MAX_NO_CHANGE_ITERATIONS': ('svm', 'max_no_change_iterations', _int),
    'ESTIMATED_MAX_ITERATIONS': ('svm', 'estimated_max_iterations', _int),
    'EXPECTED_MAX_SV': ('svm', 'expected_max_sv', _int),
    'IMAGE_SIZE': ('hog', 'image_size', _int),
    'HOG_CELL_SIZE': ('hog', 'cell_size', _int),
    'HOG_NBINS': ('hog', 'nbins', _int),
    'SIGMOID_A': ('kernels', 'sigmoid_a', float),
    'SIGMOID_B': ('kernels', 'sigmoid_b', float),
    'SIGMOID_EPSILON': ('kernels', 'epsilon', float),
    'KernelDetection': ('kernels', 'detection', _kernel_name),
    'KernelRecognition': ('kernels', 'recognition', _kernel_name),
    'DETECTION_C': ('training', 'detection_c', float),
    'RECOGNITION_C': ('training', 'recognition_c', float),
}


def parse_settings(lines):
    """
    Parse ``KEY=value`` lines into per-section overrides.

    Args:
        lines: Iterable of text lines

    Returns:
        dict: section name -> {field name: parsed value}
    """
    overrides = {}
    for line in lines:
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        parts = line.split('=')
        if len(parts) != 2:
            logging.warning(f"Ignoring malformed settings line: {line}")
            continue

        key, value = parts[0].strip(), parts[1].strip()
        if key not in SETTINGS_KEYS:
            logging.warning(f"Unknown setting {key}, ignored")
            continue

        section, name, parser = SETTINGS_KEYS[key]
        try:
            overrides.setdefault(section, {})[name] = parser(value)
        except ValueError:
            logging.warning(f"Invalid value for setting {key}: {value}")

    return overrides


def load_settings(path=os.path.join('settings', 'settings.txt'), base=None):
    """
    Build an AppConfig from a settings file.

    A missing file is not an error: the defaults (or ``base``) are returned.

    Args:
        path (str): Settings file path
        base (AppConfig): Configuration to start from

    Returns:
        AppConfig: Configuration with the file's overrides applied
    """
    config = base if base is not None else AppConfig()

    if not os.path.exists(path):
        logging.info(f"No settings file at {path}, using defaults")
        return config

    with open(path, 'r', encoding='utf-8') as f:
        overrides = parse_settings(f)

    sections = {}
    for section, values in overrides.items():
        sections[section] = replace(getattr(config, section), **values)

    logging.info(f"Loaded settings from {path}")
    return replace(config, **sections)
