import logging
from collections import OrderedDict

import numpy as np
from scipy import ndimage

import kernels
from images import BitmapImage

logger = logging.getLogger(__name__)


class ImageFilters:
    """
    Neighbourhood filters.  Every method takes a BitmapImage and returns a new
    one with the same dimensions, bit depth and palette; inputs are never
    modified.
    """

    @staticmethod
    def apply_kernel(plane, kernel):
        # Correlation, not convolution: the kernel is not flipped.  With the
        # default origin scipy anchors the kernel at (rows // 2, cols // 2) and
        # mode='constant' makes out-of-image neighbours contribute nothing.
        correlated = ndimage.correlate(plane.astype(np.float32), kernel, mode='constant', cval=0.0)
        return np.clip(correlated, 0, 255).astype(np.uint8)

    @staticmethod
    def per_channel(plane, func):
        # 24-bit planes are filtered one B/G/R channel at a time.
        if plane.ndim == 3:
            output = np.empty_like(plane)
            for c in range(plane.shape[2]):
                output[:, :, c] = func(plane[:, :, c])
            return output
        return func(plane)

    @staticmethod
    def convolve(image: BitmapImage, kernel) -> BitmapImage:
        """
        2-D correlation of ``image`` with ``kernel``.

        Neighbours outside the image contribute zero, so edge pixels get a
        partial sum.  Sums are accumulated in floating point, clamped to
        [0, 255] and truncated.
        """
        kernel = kernels.as_kernel(kernel)
        logger.debug("Correlating %dx%d image with %dx%d kernel",
                     image.width, image.height, kernel.shape[0], kernel.shape[1])

        plane = ImageFilters.per_channel(
            image.plane(), lambda channel: ImageFilters.apply_kernel(channel, kernel)
        )
        return image.derive(plane)

    @staticmethod
    def combine_magnitude(gx, gy):
        gx = np.asarray(gx, dtype=np.float64)
        gy = np.asarray(gy, dtype=np.float64)
        magnitude = np.sqrt(gx * gx + gy * gy).astype(np.int64)
        return np.minimum(magnitude, 255).astype(np.uint8)

    @staticmethod
    def magnitude(gx: BitmapImage, gy: BitmapImage) -> BitmapImage:
        """Per-pixel Euclidean magnitude of two directional results."""
        if gx.plane().shape != gy.plane().shape:
            raise ValueError("Directional images must have the same layout.")
        return gx.derive(ImageFilters.combine_magnitude(gx.plane(), gy.plane()))

    @staticmethod
    def edge_pair(image, horizontal_kernel, vertical_kernel):
        """Returns (horizontal, vertical, combined) edge images."""
        horizontal = ImageFilters.convolve(image, horizontal_kernel)
        vertical = ImageFilters.convolve(image, vertical_kernel)
        return horizontal, vertical, ImageFilters.magnitude(horizontal, vertical)

    @staticmethod
    def prewitt(image):
        return ImageFilters.edge_pair(image, kernels.PREWITT_HORIZONTAL, kernels.PREWITT_VERTICAL)

    @staticmethod
    def sobel(image):
        return ImageFilters.edge_pair(image, kernels.SOBEL_HORIZONTAL, kernels.SOBEL_VERTICAL)

    @staticmethod
    def roberts(image):
        return ImageFilters.edge_pair(image, kernels.ROBERTS_GX, kernels.ROBERTS_GY)

    @staticmethod
    def laplacian(image, positive=False, diagonal=False):
        if diagonal:
            kernel = kernels.LAPLACIAN_DIAGONAL_POSITIVE if positive else kernels.LAPLACIAN_DIAGONAL_NEGATIVE
        else:
            kernel = kernels.LAPLACIAN_POSITIVE if positive else kernels.LAPLACIAN_NEGATIVE
        return ImageFilters.convolve(image, kernel)

    @staticmethod
    def robinson(image):
        """One image per compass direction; the eight results are not combined."""
        return OrderedDict(
            (direction, ImageFilters.convolve(image, kernel))
            for direction, kernel in kernels.ROBINSON.items()
        )

    @staticmethod
    def blur(image, size=3):
        return ImageFilters.convolve(image, kernels.box_kernel(size))

    @staticmethod
    def keep_border(original, filtered, offset):
        # Only pixels whose whole window lies inside the image take the filtered value.
        height, width = original.shape[:2]
        output = np.array(original)
        output[offset:height - offset, offset:width - offset] = \
            filtered[offset:height - offset, offset:width - offset]
        return output

    @staticmethod
    def blur_preserve_border(image, size=3):
        """Box blur of the interior; a ``size // 2`` wide border keeps its original values."""
        if size % 2 == 0:
            raise ValueError("Kernel size must be an odd number.")
        blurred = ImageFilters.blur(image, size)
        plane = ImageFilters.keep_border(image.plane(), blurred.plane(), size // 2)
        return image.derive(plane)

    @staticmethod
    def gaussian_blur(image, size=5, sigma=1.0):
        kernel = kernels.gaussian_kernel(size, sigma)
        return ImageFilters.convolve(image, kernel)

    @staticmethod
    def sharpen(image):
        """High-pass detail (already clamped) added back onto the original."""
        high_pass = ImageFilters.convolve(image, kernels.HIGH_PASS)
        total = image.plane().astype(np.int16) + high_pass.plane()
        return image.derive(np.clip(total, 0, 255).astype(np.uint8))

    @staticmethod
    def rank_filter(image, size, func):
        if size < 1 or size % 2 == 0:
            raise ValueError("Kernel size must be a positive odd number.")
        plane = image.plane()
        filtered = ImageFilters.per_channel(
            plane, lambda channel: func(channel, size=size, mode='constant', cval=0)
        )
        return image.derive(ImageFilters.keep_border(plane, filtered, size // 2))

    @staticmethod
    def maximum_filter(image, size=3):
        return ImageFilters.rank_filter(image, size, ndimage.maximum_filter)

    @staticmethod
    def median_filter(image, size=3):
        return ImageFilters.rank_filter(image, size, ndimage.median_filter)
