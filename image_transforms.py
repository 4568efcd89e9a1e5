"""Point transforms, histograms, noise injection and geometry.

None of these look at neighbouring pixels.  They work on ``image.plane()``
so row padding is never touched, and every result is a new image.
"""
import enum
import logging
from pathlib import Path

import numpy as np

from errors import UnsupportedFormatError
from images import BitmapImage

logger = logging.getLogger(__name__)

MAX_BRIGHTNESS = 255
MIN_BRIGHTNESS = 0
HISTOGRAM_BINS = 256

_SEPIA = np.array([
    [0.393, 0.769, 0.189],
    [0.349, 0.686, 0.168],
    [0.272, 0.534, 0.131],
])


class Rotation(enum.Enum):
    CLOCKWISE = "cw"
    COUNTER_CLOCKWISE = "ccw"
    ROTATE_180 = "180"


def _require_depth(image, bits, operation):
    if image.bits_per_pixel != bits:
        raise UnsupportedFormatError(
            f"{operation} needs a {bits}-bit image, got {image.bits_per_pixel}-bit."
        )


class ImageTransforms:

    @staticmethod
    def negative(image: BitmapImage) -> BitmapImage:
        return image.derive(MAX_BRIGHTNESS - image.plane())

    @staticmethod
    def increase_brightness(image: BitmapImage, amount: int) -> BitmapImage:
        if amount < 0:
            raise ValueError("Brightness amount must not be negative.")
        brighter = np.minimum(image.plane().astype(np.int32) + amount, MAX_BRIGHTNESS)
        return image.derive(brighter.astype(np.uint8))

    @staticmethod
    def decrease_brightness(image: BitmapImage, amount: int) -> BitmapImage:
        if amount < 0:
            raise ValueError("Brightness amount must not be negative.")
        darker = np.maximum(image.plane().astype(np.int32) - amount, MIN_BRIGHTNESS)
        return image.derive(darker.astype(np.uint8))

    @staticmethod
    def binarize(image: BitmapImage, threshold: int) -> BitmapImage:
        """255 where the value is strictly above ``threshold``, 0 elsewhere."""
        binary = np.where(image.plane() > threshold, MAX_BRIGHTNESS, MIN_BRIGHTNESS)
        return image.derive(binary.astype(np.uint8))

    @staticmethod
    def histogram(image: BitmapImage) -> np.ndarray:
        """Relative frequency of each of the 256 grey levels."""
        _require_depth(image, 8, "Histogram")
        counts = np.bincount(image.plane().ravel(), minlength=HISTOGRAM_BINS)
        return counts / float(image.width * image.height)

    @staticmethod
    def save_histogram(path, histogram) -> Path:
        """One frequency per line, 256 lines."""
        path = Path(path)
        with open(path, "w") as stream:
            for frequency in histogram:
                stream.write(f"{frequency:f}\n")
        logger.debug("Histogram written to %s", path)
        return path

    @staticmethod
    def equalization_lookup(histogram) -> np.ndarray:
        cdf = np.cumsum(histogram)
        lookup = (MAX_BRIGHTNESS * cdf + 0.5).astype(np.int64)
        return np.clip(lookup, MIN_BRIGHTNESS, MAX_BRIGHTNESS).astype(np.uint8)

    @staticmethod
    def equalize_histogram(image: BitmapImage) -> BitmapImage:
        lookup = ImageTransforms.equalization_lookup(ImageTransforms.histogram(image))
        return image.derive(lookup[image.plane()])

    @staticmethod
    def gaussian_noise(image: BitmapImage, mean: float, variance: float,
                       rng: np.random.Generator) -> BitmapImage:
        """Adds N(mean, variance) noise to every sample, clamped and truncated."""
        if variance < 0:
            raise ValueError("Variance must not be negative.")
        plane = image.plane()
        noise = rng.normal(mean, np.sqrt(variance), size=plane.shape)
        noisy = np.clip(plane + noise, MIN_BRIGHTNESS, MAX_BRIGHTNESS)
        return image.derive(noisy.astype(np.uint8))

    @staticmethod
    def salt_and_pepper_noise(image: BitmapImage, probability: float,
                              rng: np.random.Generator) -> BitmapImage:
        if not 0.0 <= probability <= 1.0:
            raise ValueError("Probability should be between 0 and 1.")
        plane = image.plane()
        # one draw per pixel, shared by all channels of a 24-bit pixel
        draws = rng.random(size=(image.height, image.width))
        if plane.ndim == 3:
            draws = draws[:, :, np.newaxis]
        noisy = np.where(draws < probability / 2.0, MIN_BRIGHTNESS, plane)
        noisy = np.where(draws > 1.0 - probability / 2.0, MAX_BRIGHTNESS, noisy)
        return image.derive(noisy.astype(np.uint8))

    @staticmethod
    def rotate(image: BitmapImage, rotation: Rotation) -> BitmapImage:
        """
        Rotates the stored pixel grid.  Width and height swap for quarter
        turns and the header is rewritten to match.
        """
        turns = {
            Rotation.CLOCKWISE: -1,
            Rotation.COUNTER_CLOCKWISE: 1,
            Rotation.ROTATE_180: 2,
        }[Rotation(rotation)]
        rotated = np.rot90(image.plane(), k=turns)
        header = image.header.with_dimensions(rotated.shape[1], rotated.shape[0])
        return image.derive(rotated, header=header)

    @staticmethod
    def sepia(image: BitmapImage) -> BitmapImage:
        _require_depth(image, 24, "Sepia")
        bgr = image.plane().astype(np.float64)
        rgb = bgr[:, :, ::-1]
        toned = np.minimum((rgb @ _SEPIA.T).astype(np.int64), MAX_BRIGHTNESS)
        return image.derive(toned[:, :, ::-1].astype(np.uint8))

    @staticmethod
    def to_grayscale(image: BitmapImage) -> BitmapImage:
        """Luma written back into all three channels; the image stays 24-bit."""
        _require_depth(image, 24, "Grayscale conversion")
        bgr = image.plane().astype(np.float64)
        gray = (0.3 * bgr[:, :, 2] + 0.59 * bgr[:, :, 1] + 0.11 * bgr[:, :, 0]).astype(np.uint8)
        return image.derive(np.repeat(gray[:, :, np.newaxis], 3, axis=2))
