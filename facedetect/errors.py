"""Exceptions raised by the face detection package."""


class FaceDetectionError(Exception):
    """Base class for all errors raised by facedetect."""


class ConfigurationError(FaceDetectionError, ValueError):
    """Invalid input detected before any numeric work starts
    (empty dataset, zero-length or mismatched feature vectors, bad labels)."""


class ResourceError(FaceDetectionError, IOError):
    """An image, directory or model file could not be read or written."""


class ModelNotFoundError(ResourceError):
    """A stored model file does not exist."""
