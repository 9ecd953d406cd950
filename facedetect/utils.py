import os
import logging
import datetime
import numpy as np
import cv2

from facedetect.errors import ResourceError

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png')

# BT.601 luma weights in OpenCV's BGR channel order
_LUMA_BGR = np.array([0.114, 0.587, 0.299])

# Configure logging
def setup_logger(log_dir='logs', level=logging.INFO):
    """Set up console and file logging for the application."""
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f'face_detection_{timestamp}.log')

    # Modules log through the root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # File handler
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    # Format
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    # Add handlers
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger

# Create directories if they don't exist
def ensure_directory(directory):
    """Ensure directory exists, create if it doesn't."""
    if directory and not os.path.exists(directory):
        os.makedirs(directory)
        logging.info(f"Created directory: {directory}")

def list_image_files(directory):
    """
    List image files in a directory, sorted by name.

    Args:
        directory (str): Directory to scan

    Returns:
        list: Full paths of the image files
    """
    if not os.path.isdir(directory):
        error_msg = f"Image directory not found: {directory}"
        logging.error(error_msg)
        raise ResourceError(error_msg)

    return [os.path.join(directory, f) for f in sorted(os.listdir(directory))
            if f.lower().endswith(IMAGE_EXTENSIONS)]

def load_image(path):
    """Read an image from disk as a BGR array, raising if it cannot be decoded."""
    image = cv2.imread(path)
    if image is None or image.size == 0:
        error_msg = f"Could not read image: {path}"
        logging.error(error_msg)
        raise ResourceError(error_msg)
    return image

def to_luminance(image):
    """
    Convert an image to a float64 luminance grid.

    Args:
        image: BGR image (H, W, 3) or an already single-channel grid (H, W)

    Returns:
        2-D float64 array of 0.299R + 0.587G + 0.114B
    """
    image = np.asarray(image)
    if image.ndim == 2:
        return image.astype(np.float64)
    if image.ndim == 3 and image.shape[2] == 1:
        return image[:, :, 0].astype(np.float64)
    if image.ndim == 3 and image.shape[2] >= 3:
        return image[:, :, :3].astype(np.float64) @ _LUMA_BGR
    raise ValueError(f"Unsupported image shape {image.shape}")

def intensity_std(image):
    """Population standard deviation of the image luminance."""
    return float(np.std(to_luminance(image)))

def scale_to_size(image, size=128):
    """Resize an image to a size x size square."""
    if image.shape[0] == size and image.shape[1] == size:
        return image
    return cv2.resize(image, (size, size), interpolation=cv2.INTER_AREA)

def resize_if_large(image, max_width=640, max_height=360):
    """Shrink an image to fit max_width x max_height, keeping its aspect ratio."""
    height, width = image.shape[:2]
    if width <= max_width and height <= max_height:
        return image

    scale = min(max_width / width, max_height / height)
    new_width = int(width * scale)
    new_height = int(height * scale)
    resized = cv2.resize(image, (new_width, new_height), interpolation=cv2.INTER_AREA)
    logging.info(f"Image resized from {width}x{height} to {new_width}x{new_height}")
    return resized

def image_size_range(images):
    """
    Smallest and largest width / height over a list of images.

    Returns:
        tuple: (min_width, min_height, max_width, max_height), zeros if empty
    """
    if not images:
        return 0, 0, 0, 0
    widths = [img.shape[1] for img in images]
    heights = [img.shape[0] for img in images]
    return min(widths), min(heights), max(widths), max(heights)
