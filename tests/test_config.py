import pytest

from facedetect.config import (AppConfig, DetectorConfig, HOGConfig, KernelConfig,
                               load_settings, parse_settings)
from facedetect.errors import ConfigurationError


SETTINGS = """
# detector
SCORE_THRESHOLD=0.05
WINDOW_SIZES=96,112,128
STEPS=32,40,48
NMS_THRESHOLD=0.3
MAX_ITERATIONS=5000.0
TIMEOUT_MS=60000
KernelDetection=Sigmoid
KernelRecognition=LINEAR
SIGMOID_A=0.01
DETECTION_C=0.5
"""


def test_parse_settings_maps_keys_to_sections():
    overrides = parse_settings(SETTINGS.splitlines())
    assert overrides['detector'] == {
        'score_threshold': 0.05,
        'window_sizes': (96, 112, 128),
        'steps': (32, 40, 48),
        'nms_threshold': 0.3,
    }
    assert overrides['svm'] == {'max_iterations': 5000, 'timeout_seconds': 60.0}
    assert overrides['kernels'] == {'detection': 'sigmoid', 'recognition': 'linear', 'sigmoid_a': 0.01}
    assert overrides['training'] == {'detection_c': 0.5}


def test_parse_settings_ignores_bad_lines(caplog):
    overrides = parse_settings(['NOT_A_KEY=1', 'SCORE_THRESHOLD=abc', 'missing separator',
                                'A=B=C', '', '# comment', 'HOG_NBINS=6'])
    assert overrides == {'hog': {'nbins': 6}}
    assert 'Unknown setting NOT_A_KEY' in caplog.text


def test_missing_settings_file_gives_defaults(tmp_path):
    assert load_settings(str(tmp_path / 'settings.txt')) == AppConfig()


def test_load_settings_applies_overrides(tmp_path):
    path = tmp_path / 'settings.txt'
    path.write_text(SETTINGS, encoding='utf-8')
    config = load_settings(str(path))

    assert config.detector.window_sizes == (96, 112, 128)
    assert config.detector.variance_threshold == 20.0
    assert config.svm.timeout_seconds == 60.0
    assert config.svm.min_iterations == 5
    assert config.kernels.detection == 'sigmoid'
    assert config.training.detection_c == 0.5
    assert config.training.recognition_c == 1.0
    assert config.hog == HOGConfig()


def test_inconsistent_settings_file_is_rejected(tmp_path):
    path = tmp_path / 'settings.txt'
    path.write_text('WINDOW_SIZES=112,128\nSTEPS=40\n', encoding='utf-8')
    with pytest.raises(ConfigurationError):
        load_settings(str(path))


def test_defaults():
    config = AppConfig()
    assert config.detector.window_sizes == (112, 128)
    assert config.detector.steps == (40, 48)
    assert config.detector.score_threshold == 0.035
    assert config.svm.epsilon == 1e-12
    assert config.svm.timeout_seconds == 900.0
    assert config.kernels.sigmoid_a == 0.001
    assert config.training.detection_c == 0.1


@pytest.mark.parametrize('factory', [
    lambda: DetectorConfig(window_sizes=(112, 128), steps=(40,)),
    lambda: DetectorConfig(window_sizes=(0,), steps=(40,)),
    lambda: KernelConfig(detection='rbf'),
    lambda: HOGConfig(image_size=8, cell_size=8),
    lambda: HOGConfig(nbins=0),
])
def test_invalid_configuration(factory):
    with pytest.raises(ConfigurationError):
        factory()
